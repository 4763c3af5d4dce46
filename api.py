from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, List, Optional

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Path, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from models import (
    CreateReservationIn,
    CreateUserIn,
    LoginIn,
    LoginOut,
    MessageOut,
    ReservationOut,
    UpdateUserIn,
    UserOut,
    reservation_out,
    user_out,
)
from repository import StoreError
from security import verify_token
from services import (
    AuthenticationError,
    BookingError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ReservationService,
    UserService,
    ValidationError,
)

logger = logging.getLogger(__name__)

# A FastAPI dependency returning the id of the calling user.
IdentityResolver = Callable[..., str]


def bearer_identity(secret: str, clock: Callable[[], datetime] = datetime.now) -> IdentityResolver:
    """Resolve the caller from an `Authorization: Bearer <token>` header issued by /login."""

    def resolve(authorization: Optional[str] = Header(default=None)) -> str:
        scheme, _, token = (authorization or "").partition(" ")
        user_id = verify_token(token.strip(), secret, clock()) if scheme.lower() == "bearer" else None
        if user_id is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Authentication required.",
                headers={"WWW-Authenticate": "Bearer"},
            )
        return user_id

    return resolve


def header_identity() -> IdentityResolver:
    """Trust a client-supplied `X-User-Id` header. Nothing verifies it."""

    def resolve(x_user_id: Optional[str] = Header(default=None)) -> str:
        if x_user_id is None or not x_user_id.strip():
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Authentication required.",
            )
        return x_user_id.strip()

    return resolve


def create_router(
    reservations: ReservationService,
    users: UserService,
    identity: IdentityResolver,
) -> APIRouter:
    router = APIRouter()

    # -----------------------------
    # Reservations
    # -----------------------------
    @router.post("/reservar", response_model=ReservationOut, status_code=status.HTTP_201_CREATED)
    def create_reservation(payload: CreateReservationIn, caller_id: str = Depends(identity)) -> ReservationOut:
        reservation = reservations.reserve(payload.room_id, caller_id, payload, payload.purpose)
        return reservation_out(reservation)

    @router.get("/reservas", response_model=List[ReservationOut])
    def list_reservations() -> List[ReservationOut]:
        return [reservation_out(r, owner) for r, owner in reservations.list_reservations()]

    @router.get("/reservas/{day}", response_model=List[ReservationOut])
    def list_reservations_on(day: str = Path(..., min_length=1)) -> List[ReservationOut]:
        return [reservation_out(r, owner) for r, owner in reservations.list_reservations_on(day)]

    @router.delete("/reservas/{reservation_id}", response_model=MessageOut)
    def delete_reservation(
        reservation_id: str = Path(..., min_length=1),
        caller_id: str = Depends(identity),
    ) -> MessageOut:
        reservations.delete_reservation(reservation_id, caller_id)
        return MessageOut(message="Reservation deleted.")

    # -----------------------------
    # Users
    # -----------------------------
    @router.post("/cadastro", response_model=UserOut, status_code=status.HTTP_201_CREATED)
    def register(payload: CreateUserIn) -> UserOut:
        return user_out(users.register(payload))

    @router.get("/usuarios", response_model=List[UserOut])
    def list_users() -> List[UserOut]:
        return [user_out(u) for u in users.list_users()]

    @router.get("/usuarios/{user_id}", response_model=UserOut)
    def get_user(user_id: str = Path(..., min_length=1)) -> UserOut:
        return user_out(users.get_user(user_id))

    @router.put("/usuarios/{user_id}", response_model=UserOut)
    def update_user(
        payload: UpdateUserIn,
        user_id: str = Path(..., min_length=1),
        caller_id: str = Depends(identity),
    ) -> UserOut:
        return user_out(users.update_user(user_id, payload, caller_id))

    @router.delete("/usuarios/{user_id}", response_model=MessageOut)
    def delete_user(
        user_id: str = Path(..., min_length=1),
        caller_id: str = Depends(identity),
    ) -> MessageOut:
        users.delete_user(user_id, caller_id)
        return MessageOut(message="User deleted.")

    @router.post("/login", response_model=LoginOut)
    def login(payload: LoginIn) -> LoginOut:
        user = users.authenticate(payload.email, payload.password)
        return LoginOut(
            user_id=user.user_id,
            display_name=user.display_name,
            email=user.email,
            access_token=users.issue_token(user),
        )

    return router


# -----------------------------
# Error translation
# -----------------------------
_ERROR_STATUS = {
    ValidationError: status.HTTP_400_BAD_REQUEST,
    AuthenticationError: status.HTTP_401_UNAUTHORIZED,
    ForbiddenError: status.HTTP_403_FORBIDDEN,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    ConflictError: status.HTTP_409_CONFLICT,
}


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(BookingError)
    async def booking_error(request: Request, exc: BookingError) -> JSONResponse:
        code = next(
            (c for cls, c in _ERROR_STATUS.items() if isinstance(exc, cls)),
            status.HTTP_400_BAD_REQUEST,
        )
        return JSONResponse(status_code=code, content={"detail": str(exc) or type(exc).__name__})

    @app.exception_handler(RequestValidationError)
    async def request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": jsonable_encoder(exc.errors())},
        )

    @app.exception_handler(StoreError)
    async def store_error(request: Request, exc: StoreError) -> JSONResponse:
        logger.error("Store failure on %s %s", request.method, request.url.path, exc_info=exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal server error."},
        )
