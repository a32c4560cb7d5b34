from typing import Generator

from fastapi import Request

from linkedbud.config import settings
from linkedbud.db.base import SessionLocal, engine, Base
from linkedbud.db import models  # noqa: F401  registers tables on Base
from linkedbud.errors import AuthenticationError

def init_db() -> None:
    Base.metadata.create_all(bind=engine)

def get_db() -> Generator:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

def require_cron_secret(request: Request) -> None:
    """Cron endpoints accept `Authorization: Bearer <CRON_SECRET>` when a secret is set."""
    if not settings.cron_secret:
        return
    if request.headers.get("authorization") != f"Bearer {settings.cron_secret}":
        raise AuthenticationError()
