from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Optional

from pydantic import BaseModel, Field


class InvalidIntervalError(ValueError):
    """Raised when an interval cannot be built from the given input."""


# -----------------------------
# Shared time helpers
# -----------------------------
DATE_FORMAT = "%Y-%m-%d"
CLOCK_FORMATS = ("%H:%M", "%H:%M:%S")


def _require(value: Optional[str], field: str) -> str:
    if value is None or not str(value).strip():
        raise InvalidIntervalError(f"{field} is required")
    return str(value).strip()


def parse_calendar_date(value: Optional[str], field: str = "date") -> date:
    """
    Parse a 'YYYY-MM-DD' calendar date.
    Impossible dates (e.g. 2030-02-30) are rejected as well as malformed ones.
    """
    s = _require(value, field)
    try:
        return datetime.strptime(s, DATE_FORMAT).date()
    except ValueError:
        raise InvalidIntervalError(f"{field} must be a calendar date (YYYY-MM-DD)") from None


def parse_clock_time(value: Optional[str], field: str = "time") -> time:
    s = _require(value, field)
    for fmt in CLOCK_FORMATS:
        try:
            return datetime.strptime(s, fmt).time()
        except ValueError:
            continue
    raise InvalidIntervalError(f"{field} must be a clock time (HH:MM)")


def intervals_overlap(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """
    Half-open interval overlap: [start, end)
    Overlap iff a_start < b_end AND a_end > b_start.
    Back-to-back is allowed (end == other.start is NOT overlap).
    """
    return a_start < b_end and a_end > b_start


def iso_local(dt: datetime) -> str:
    # naive local time, no offset
    return dt.isoformat(timespec="seconds")


# -----------------------------
# Domain model
# -----------------------------
@dataclass(frozen=True)
class Interval:
    room_id: str
    start: datetime  # naive local time
    end: datetime    # naive local time, exclusive

    def __post_init__(self) -> None:
        if not self.room_id or not self.room_id.strip():
            raise InvalidIntervalError("room_id is required")
        if not (self.start < self.end):
            raise InvalidIntervalError("start must be before end")

    @classmethod
    def whole_day(cls, room_id: str, day: str) -> Interval:
        d = parse_calendar_date(day, "date")
        start = datetime.combine(d, time.min)
        return cls(room_id=room_id, start=start, end=start + timedelta(days=1))

    @classmethod
    def between(
        cls,
        room_id: str,
        start_date: str,
        start_time: str,
        end_date: str,
        end_time: str,
    ) -> Interval:
        start = datetime.combine(
            parse_calendar_date(start_date, "start_date"),
            parse_clock_time(start_time, "start_time"),
        )
        end = datetime.combine(
            parse_calendar_date(end_date, "end_date"),
            parse_clock_time(end_time, "end_time"),
        )
        return cls(room_id=room_id, start=start, end=end)

    def overlaps(self, other: Interval) -> bool:
        return intervals_overlap(self.start, self.end, other.start, other.end)


@dataclass(frozen=True)
class Reservation:
    reservation_id: str
    interval: Interval
    owner_id: str  # weak reference to User.user_id
    created_at: datetime
    purpose: Optional[str] = None

    @property
    def room_id(self) -> str:
        return self.interval.room_id


@dataclass(frozen=True)
class User:
    user_id: str
    display_name: str
    email: str
    password_hash: str


# -----------------------------
# API models (transport layer)
# -----------------------------
class IntervalIn(BaseModel):
    # Either `date` (whole day) or all four sub-day fields.
    date: Optional[str] = None
    start_date: Optional[str] = None
    start_time: Optional[str] = None
    end_date: Optional[str] = None
    end_time: Optional[str] = None

    def is_sub_day(self) -> bool:
        return any(
            v is not None
            for v in (self.start_date, self.start_time, self.end_date, self.end_time)
        )


def build_interval(room_id: Optional[str], raw: IntervalIn) -> Interval:
    room = _require(room_id, "room_id")
    if raw.is_sub_day():
        if raw.date is not None:
            raise InvalidIntervalError("send either date or start/end fields, not both")
        return Interval.between(
            room,
            _require(raw.start_date, "start_date"),
            _require(raw.start_time, "start_time"),
            _require(raw.end_date, "end_date"),
            _require(raw.end_time, "end_time"),
        )
    return Interval.whole_day(room, _require(raw.date, "date"))


class CreateReservationIn(IntervalIn):
    room_id: Optional[str] = None
    purpose: Optional[str] = Field(default=None, max_length=500)


class OwnerOut(BaseModel):
    user_id: str
    display_name: str
    email: str


class ReservationOut(BaseModel):
    reservation_id: str
    room_id: str
    start: str  # ISO-8601, naive local time
    end: str
    purpose: Optional[str] = None
    owner_id: str
    owner: Optional[OwnerOut] = None
    created_at: str


class CreateUserIn(BaseModel):
    display_name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None


class UpdateUserIn(BaseModel):
    display_name: Optional[str] = Field(default=None, min_length=1)
    email: Optional[str] = None
    password: Optional[str] = Field(default=None, min_length=1)


class UserOut(BaseModel):
    user_id: str
    display_name: str
    email: str


class LoginIn(BaseModel):
    email: str
    password: str


class LoginOut(UserOut):
    access_token: str
    token_type: str = "bearer"


class MessageOut(BaseModel):
    message: str


def reservation_out(reservation: Reservation, owner: Optional[User] = None) -> ReservationOut:
    return ReservationOut(
        reservation_id=reservation.reservation_id,
        room_id=reservation.room_id,
        start=iso_local(reservation.interval.start),
        end=iso_local(reservation.interval.end),
        purpose=reservation.purpose,
        owner_id=reservation.owner_id,
        owner=owner_out(owner) if owner is not None else None,
        created_at=iso_local(reservation.created_at),
    )


def owner_out(user: User) -> OwnerOut:
    return OwnerOut(user_id=user.user_id, display_name=user.display_name, email=user.email)


def user_out(user: User) -> UserOut:
    return UserOut(user_id=user.user_id, display_name=user.display_name, email=user.email)

