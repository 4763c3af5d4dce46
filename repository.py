from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from threading import Lock
from typing import Dict, Iterator, List, Optional

from conflicts import has_conflict, is_expired
from models import Reservation, User

logger = logging.getLogger(__name__)

DEFAULT_LOCK_TIMEOUT = 5.0


class StoreError(RuntimeError):
    """The store could not complete an operation in time."""


class DuplicateEmailError(Exception):
    pass


class _TimedLock:
    def __init__(self, name: str, timeout: float) -> None:
        self._lock = Lock()
        self._name = name
        self._timeout = timeout

    @contextmanager
    def held(self) -> Iterator[None]:
        if not self._lock.acquire(timeout=self._timeout):
            logger.error("Timed out after %.1fs waiting for %s store", self._timeout, self._name)
            raise StoreError(f"{self._name} store unavailable")
        try:
            yield
        finally:
            self._lock.release()


class InMemoryReservationRepository:
    def __init__(self, lock_timeout: float = DEFAULT_LOCK_TIMEOUT) -> None:
        self._items: Dict[str, Reservation] = {}
        self._lock = _TimedLock("reservation", lock_timeout)

    def find_by_room(self, room_id: str) -> List[Reservation]:
        with self._lock.held():
            return [r for r in self._items.values() if r.room_id == room_id]

    def find_all(self) -> List[Reservation]:
        with self._lock.held():
            return list(self._items.values())

    def find_by_id(self, reservation_id: str) -> Optional[Reservation]:
        with self._lock.held():
            return self._items.get(reservation_id)

    def delete_where_expired(self, before: datetime) -> int:
        with self._lock.held():
            expired = [rid for rid, r in self._items.items() if is_expired(r.interval, before)]
            for rid in expired:
                del self._items[rid]
            return len(expired)

    def insert(self, reservation: Reservation) -> Reservation:
        with self._lock.held():
            self._items[reservation.reservation_id] = reservation
            return reservation

    def insert_if_no_conflict(self, reservation: Reservation) -> bool:
        """
        Atomically checks overlap and inserts the reservation if possible.
        Returns True if inserted, False if it overlaps an existing one.
        """
        with self._lock.held():
            same_room = [r.interval for r in self._items.values() if r.room_id == reservation.room_id]
            if has_conflict(reservation.room_id, reservation.interval, same_room):
                return False
            self._items[reservation.reservation_id] = reservation
            return True

    def delete_by_id(self, reservation_id: str) -> bool:
        with self._lock.held():
            if reservation_id not in self._items:
                return False
            del self._items[reservation_id]
            return True


class InMemoryUserRepository:
    def __init__(self, lock_timeout: float = DEFAULT_LOCK_TIMEOUT) -> None:
        self._items: Dict[str, User] = {}
        self._lock = _TimedLock("user", lock_timeout)

    def _email_taken(self, email: str, except_id: Optional[str] = None) -> bool:
        key = email.casefold()
        return any(
            u.email.casefold() == key and u.user_id != except_id for u in self._items.values()
        )

    def create(self, user: User) -> User:
        with self._lock.held():
            if self._email_taken(user.email):
                raise DuplicateEmailError(user.email)
            self._items[user.user_id] = user
            return user

    def find_all(self) -> List[User]:
        with self._lock.held():
            return list(self._items.values())

    def find_by_id(self, user_id: str) -> Optional[User]:
        with self._lock.held():
            return self._items.get(user_id)

    def find_by_email(self, email: str) -> Optional[User]:
        key = email.casefold()
        with self._lock.held():
            for u in self._items.values():
                if u.email.casefold() == key:
                    return u
            return None

    def update_by_id(self, user: User) -> Optional[User]:
        with self._lock.held():
            if user.user_id not in self._items:
                return None
            if self._email_taken(user.email, except_id=user.user_id):
                raise DuplicateEmailError(user.email)
            self._items[user.user_id] = user
            return user

    def delete_by_id(self, user_id: str) -> bool:
        with self._lock.held():
            if user_id not in self._items:
                return False
            del self._items[user_id]
            return True
