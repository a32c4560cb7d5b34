# linkedbud/services/tokens.py
import logging
import math
from datetime import datetime
from typing import Optional

import httpx
from sqlalchemy.orm import Session

from linkedbud.db import crud_tokens
from linkedbud.db.base import utcnow
from linkedbud.db.models import LinkedInToken
from linkedbud.errors import LinkedbudError
from linkedbud.services.linkedin_api import LinkedInAPIError, LinkedInClient
from linkedbud.services.linkedin_oauth import oauth_app_for

logger = logging.getLogger(__name__)

EXPIRY_BUFFER_SECONDS = 300
EXPIRING_SOON_DAYS = 5


def days_until_expiration(expires_at: Optional[datetime], now: Optional[datetime] = None) -> Optional[int]:
    if expires_at is None:
        return None
    now = now or utcnow()
    return math.ceil((expires_at - now).total_seconds() / 86400)


def is_token_expiring_soon(expires_at: Optional[datetime], now: Optional[datetime] = None) -> bool:
    days = days_until_expiration(expires_at, now)
    return days is not None and days <= EXPIRING_SOON_DAYS


def _refresh(db: Session, tok: LinkedInToken) -> Optional[LinkedInToken]:
    refresh_token = tok.refresh_token
    if not refresh_token:
        logger.info("LinkedIn %s token for %s expired with no refresh token", tok.type, tok.user_id)
        return None

    previous_expiry = tok.token_expires_at
    try:
        resp = oauth_app_for(tok.type).refresh(refresh_token)
    except (LinkedInAPIError, LinkedbudError, httpx.HTTPError) as e:
        logger.warning("LinkedIn %s token refresh failed for %s: %s", tok.type, tok.user_id, e)
        return None

    tok = crud_tokens.update_refreshed_token(
        db,
        tok,
        access_token=resp["access_token"],
        expires_in=resp.get("expires_in", 3600),
        refresh_token=resp.get("refresh_token"),
    )
    if previous_expiry is not None and tok.token_expires_at <= previous_expiry:
        logger.warning("LinkedIn %s refresh for %s did not extend expiry", tok.type, tok.user_id)
        return None
    logger.info("Refreshed LinkedIn %s token for %s", tok.type, tok.user_id)
    return tok


def _revalidate_profile(db: Session, tok: LinkedInToken) -> None:
    try:
        client = LinkedInClient(tok.access_token)
        if not client.validate_token():
            return
        profile = client.get_profile().as_profile_data()
        if profile != (tok.profile_data or {}):
            crud_tokens.update_profile_data(db, tok, profile)
    except Exception as e:
        logger.warning("Could not refresh LinkedIn profile for %s: %s", tok.user_id, e)


def get_token(db: Session, user_id: str, token_type: str) -> Optional[LinkedInToken]:
    """Return a usable token of `token_type` for the user, refreshing it if needed.

    None means the user has to (re)connect: there is no row, or the row is
    expired and could not be refreshed. Such rows are deactivated, not deleted.
    """
    tok = crud_tokens.get_active_token(db, user_id, token_type)
    if tok is None:
        return None

    if crud_tokens.is_token_expiring(tok, seconds=EXPIRY_BUFFER_SECONDS):
        refreshed = _refresh(db, tok)
        if refreshed is None:
            crud_tokens.deactivate_token(db, tok)
            return None
        tok = refreshed

    if token_type == "personal":
        _revalidate_profile(db, tok)
    return tok
