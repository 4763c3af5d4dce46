from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from fastapi import FastAPI

from api import bearer_identity, create_router, header_identity, install_error_handlers
from config import Settings, get_settings
from repository import InMemoryReservationRepository, InMemoryUserRepository
from services import ReservationService, UserService

logger = logging.getLogger("room_reservations")


def configure_logging(level: str) -> None:
    logging.basicConfig(level=level.upper(), format="%(asctime)s %(levelname)s [%(name)s] %(message)s")


def create_app(
    settings: Optional[Settings] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> FastAPI:
    settings = settings or get_settings()
    clock = clock or datetime.now
    configure_logging(settings.log_level)

    # Wire up dependencies explicitly; tests build their own app.
    reservation_repo = InMemoryReservationRepository(lock_timeout=settings.store_timeout_seconds)
    user_repo = InMemoryUserRepository(lock_timeout=settings.store_timeout_seconds)
    reservation_service = ReservationService(reservation_repo, users=user_repo, clock=clock)
    user_service = UserService(
        user_repo,
        token_secret=settings.token_secret,
        token_ttl=timedelta(seconds=settings.token_ttl_seconds),
        clock=clock,
    )

    if settings.identity_mode == "header":
        logger.warning("IDENTITY_MODE=header: caller identity is taken from X-User-Id without verification")
        identity = header_identity()
    else:
        if settings.token_secret == "change-me":
            logger.warning("TOKEN_SECRET is not set; using the built-in development secret")
        identity = bearer_identity(settings.token_secret, clock)

    app = FastAPI(title=settings.app_title, version="1.0.0")
    app.include_router(create_router(reservation_service, user_service, identity))
    install_error_handlers(app)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000)
