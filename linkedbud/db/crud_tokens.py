# linkedbud/db/crud_tokens.py
from datetime import timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from linkedbud.db.base import utcnow
from linkedbud.db.models import LinkedInToken

def get_active_token(db: Session, user_id: str, token_type: str) -> Optional[LinkedInToken]:
    return (
        db.query(LinkedInToken)
        .filter(
            LinkedInToken.user_id == user_id,
            LinkedInToken.type == token_type,
            LinkedInToken.is_active.is_(True),
        )
        .first()
    )

def get_token_row(db: Session, user_id: str, token_type: str) -> Optional[LinkedInToken]:
    return (
        db.query(LinkedInToken)
        .filter(LinkedInToken.user_id == user_id, LinkedInToken.type == token_type)
        .first()
    )

def list_active_tokens(db: Session, user_id: str) -> List[LinkedInToken]:
    return (
        db.query(LinkedInToken)
        .filter(LinkedInToken.user_id == user_id, LinkedInToken.is_active.is_(True))
        .order_by(LinkedInToken.type)
        .all()
    )

def upsert_token(
    db: Session,
    user_id: str,
    token_type: str,
    access_token: str,
    expires_in: int,
    refresh_token: Optional[str] = None,
    linkedin_user_id: Optional[str] = None,
    profile_data: Optional[Dict[str, Any]] = None,
) -> LinkedInToken:
    """Create or replace the (user_id, type) row. Last write wins."""
    row = get_token_row(db, user_id, token_type)
    if row is None:
        row = LinkedInToken(user_id=user_id, type=token_type)
    row.access_token = access_token
    row.refresh_token = refresh_token
    row.token_expires_at = utcnow() + timedelta(seconds=int(expires_in))
    if linkedin_user_id is not None:
        row.linkedin_user_id = linkedin_user_id
    row.profile_data = profile_data
    row.is_active = True
    row.updated_at = utcnow()
    db.add(row)
    db.commit()
    db.refresh(row)
    return row

def update_refreshed_token(
    db: Session,
    tok: LinkedInToken,
    access_token: str,
    expires_in: int,
    refresh_token: Optional[str] = None,
) -> LinkedInToken:
    tok.access_token = access_token
    if refresh_token:
        # LinkedIn may rotate the refresh token; keep the old one otherwise
        tok.refresh_token = refresh_token
    tok.token_expires_at = utcnow() + timedelta(seconds=int(expires_in))
    tok.updated_at = utcnow()
    db.add(tok)
    db.commit()
    db.refresh(tok)
    return tok

def update_profile_data(db: Session, tok: LinkedInToken, profile_data: Dict[str, Any]) -> LinkedInToken:
    tok.profile_data = profile_data
    tok.updated_at = utcnow()
    db.add(tok)
    db.commit()
    db.refresh(tok)
    return tok

def deactivate_token(db: Session, tok: LinkedInToken) -> None:
    tok.is_active = False
    tok.updated_at = utcnow()
    db.add(tok)
    db.commit()

def delete_token(db: Session, tok: LinkedInToken) -> None:
    db.delete(tok)
    db.commit()

def is_token_expiring(tok: LinkedInToken, seconds: int = 300) -> bool:
    """True when the token has no recorded expiry or expires within `seconds`."""
    if tok.token_expires_at is None:
        return True
    return (tok.token_expires_at - utcnow()).total_seconds() < seconds
