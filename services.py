from __future__ import annotations

import logging
from datetime import datetime, time, timedelta
from typing import Callable, List, Optional, Tuple
from uuid import uuid4

from conflicts import is_expired
from models import (
    CreateUserIn,
    IntervalIn,
    InvalidIntervalError,
    Reservation,
    UpdateUserIn,
    User,
    build_interval,
    intervals_overlap,
    parse_calendar_date,
)
from repository import (
    DuplicateEmailError,
    InMemoryReservationRepository,
    InMemoryUserRepository,
)
from security import hash_password, issue_token, verify_password

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class BookingError(Exception):
    """Base class for domain/service errors."""


class ValidationError(BookingError):
    pass


class ConflictError(BookingError):
    pass


class NotFoundError(BookingError):
    pass


class ForbiddenError(BookingError):
    pass


class AuthenticationError(BookingError):
    pass


def _blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


class ReservationService:
    def __init__(
        self,
        repo: InMemoryReservationRepository,
        users: Optional[InMemoryUserRepository] = None,
        clock: Clock = datetime.now,
    ) -> None:
        self._repo = repo
        self._users = users
        self._clock = clock

    def sweep(self, now: Optional[datetime] = None) -> int:
        """Delete every reservation whose interval ended at or before `now`."""
        now = now or self._clock()
        removed = self._repo.delete_where_expired(now)
        if removed:
            logger.info("Swept %d expired reservation(s) ending at or before %s", removed, now)
        return removed

    def reserve(
        self,
        room_id: Optional[str],
        owner_id: Optional[str],
        interval_in: IntervalIn,
        purpose: Optional[str] = None,
    ) -> Reservation:
        # Rule: room and owner are required
        if _blank(room_id):
            raise ValidationError("room_id is required")
        if _blank(owner_id):
            raise ValidationError("owner_id is required")

        try:
            interval = build_interval(room_id, interval_in)
        except InvalidIntervalError as exc:
            raise ValidationError(str(exc)) from exc

        now = self._clock()
        # Rule: the interval must not have fully elapsed already
        if is_expired(interval, now):
            raise ValidationError("interval has already ended")
        self.sweep(now)

        reservation = Reservation(
            reservation_id=f"rsv_{uuid4().hex}",
            interval=interval,
            owner_id=owner_id.strip(),
            created_at=now,
            purpose=purpose.strip() if purpose and purpose.strip() else None,
        )

        # Rule: no overlap with existing reservations in the same room
        if not self._repo.insert_if_no_conflict(reservation):
            logger.info(
                "Rejected reservation for room %s [%s, %s): overlaps an existing reservation",
                interval.room_id,
                interval.start,
                interval.end,
            )
            raise ConflictError("room is already reserved for this period")

        logger.info(
            "Reserved room %s [%s, %s) as %s for %s",
            interval.room_id,
            interval.start,
            interval.end,
            reservation.reservation_id,
            reservation.owner_id,
        )
        return reservation

    def get_reservation(self, reservation_id: str) -> Reservation:
        reservation = self._repo.find_by_id(reservation_id)
        if reservation is None:
            raise NotFoundError("reservation not found")
        return reservation

    def delete_reservation(self, reservation_id: str, requester_id: Optional[str]) -> None:
        reservation = self.get_reservation(reservation_id)
        if _blank(requester_id) or requester_id != reservation.owner_id:
            logger.warning(
                "Refused deletion of %s: requested by %s, owned by %s",
                reservation_id,
                requester_id,
                reservation.owner_id,
            )
            raise ForbiddenError("only the owner can delete this reservation")
        if not self._repo.delete_by_id(reservation_id):
            # Swept or deleted concurrently.
            raise NotFoundError("reservation not found")
        logger.info("Deleted reservation %s", reservation_id)

    def list_reservations(self) -> List[Tuple[Reservation, Optional[User]]]:
        self.sweep()
        return self._with_owners(self._repo.find_all())

    def list_reservations_on(self, day: str) -> List[Tuple[Reservation, Optional[User]]]:
        """Reservations in any room overlapping the whole calendar day `day`."""
        try:
            start = datetime.combine(parse_calendar_date(day, "date"), time.min)
        except InvalidIntervalError as exc:
            raise ValidationError(str(exc)) from exc
        end = start + timedelta(days=1)
        self.sweep()
        items = [
            r for r in self._repo.find_all()
            if intervals_overlap(r.interval.start, r.interval.end, start, end)
        ]
        return self._with_owners(items)

    def _with_owners(self, items: List[Reservation]) -> List[Tuple[Reservation, Optional[User]]]:
        items.sort(key=lambda r: (r.interval.start, r.room_id))
        if self._users is None:
            return [(r, None) for r in items]
        # Owners may have been deleted; their reservations are kept.
        return [(r, self._users.find_by_id(r.owner_id)) for r in items]


class UserService:
    def __init__(
        self,
        repo: InMemoryUserRepository,
        token_secret: str,
        token_ttl: timedelta = timedelta(hours=8),
        clock: Clock = datetime.now,
    ) -> None:
        self._repo = repo
        self._token_secret = token_secret
        self._token_ttl = token_ttl
        self._clock = clock

    def register(self, payload: CreateUserIn) -> User:
        if _blank(payload.display_name) or _blank(payload.email) or _blank(payload.password):
            raise ValidationError("display_name, email and password are required")
        user = User(
            user_id=f"usr_{uuid4().hex}",
            display_name=payload.display_name.strip(),
            email=payload.email.strip(),
            password_hash=hash_password(payload.password),
        )
        try:
            self._repo.create(user)
        except DuplicateEmailError:
            raise ConflictError("email is already registered") from None
        logger.info("Registered user %s", user.user_id)
        return user

    def list_users(self) -> List[User]:
        return sorted(self._repo.find_all(), key=lambda u: u.display_name.casefold())

    def get_user(self, user_id: str) -> User:
        user = self._repo.find_by_id(user_id)
        if user is None:
            raise NotFoundError("user not found")
        return user

    def update_user(self, user_id: str, payload: UpdateUserIn, requester_id: Optional[str]) -> User:
        current = self.get_user(user_id)
        if requester_id != current.user_id:
            raise ForbiddenError("users can only update their own account")
        if payload.display_name is not None and _blank(payload.display_name):
            raise ValidationError("display_name cannot be blank")
        if payload.email is not None and _blank(payload.email):
            raise ValidationError("email cannot be blank")
        updated = User(
            user_id=current.user_id,
            display_name=(payload.display_name or current.display_name).strip(),
            email=(payload.email or current.email).strip(),
            password_hash=(
                hash_password(payload.password) if payload.password else current.password_hash
            ),
        )
        try:
            stored = self._repo.update_by_id(updated)
        except DuplicateEmailError:
            raise ConflictError("email is already registered") from None
        if stored is None:
            raise NotFoundError("user not found")
        logger.info("Updated user %s", user_id)
        return stored

    def delete_user(self, user_id: str, requester_id: Optional[str]) -> None:
        current = self.get_user(user_id)
        if requester_id != current.user_id:
            raise ForbiddenError("users can only delete their own account")
        if not self._repo.delete_by_id(user_id):
            raise NotFoundError("user not found")
        # Reservations owned by this user are kept.
        logger.info("Deleted user %s", user_id)

    def authenticate(self, email: str, password: str) -> User:
        user = self._repo.find_by_email(email.strip()) if email else None
        if user is None or not verify_password(password, user.password_hash):
            logger.info("Failed login for %s", email)
            raise AuthenticationError("invalid email or password")
        return user

    def issue_token(self, user: User) -> str:
        return issue_token(user.user_id, self._token_secret, self._token_ttl, self._clock())
