# linkedbud/routers/auth_linkedin.py
import logging
import secrets
from typing import Any, Callable, Dict, Optional

import httpx
from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from linkedbud.auth.session import get_current_user_id
from linkedbud.config import settings
from linkedbud.db import crud, crud_tokens
from linkedbud.db.models import TOKEN_TYPES
from linkedbud.deps import get_db
from linkedbud.errors import InvalidRequestError, LinkedbudError, NotFoundError
from linkedbud.services import tokens
from linkedbud.services.linkedin_api import LinkedInAPIError, LinkedInClient
from linkedbud.services.linkedin_oauth import oauth_app_for

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/linkedin", tags=["linkedin-auth"])

STATE_COOKIES = {"personal": "linkedin_oauth_state", "community": "linkedin_community_oauth_state"}
STATE_MAX_AGE = 600
ONBOARDING_SUFFIX = ":onboarding"

# ?linkedin_error=<code> on the frontend
ERR_PROVIDER = 1
ERR_MISSING_CODE = 2
ERR_PERSIST = 3
ERR_UNEXPECTED = 4


class RevokeIn(BaseModel):
    type: str = "personal"


def _start(token_type: str, onboarding: bool) -> RedirectResponse:
    state = secrets.token_urlsafe(24)
    if onboarding:
        state += ONBOARDING_SUFFIX
    url = oauth_app_for(token_type).authorization_url(state)
    resp = RedirectResponse(url, status_code=307)
    resp.set_cookie(
        STATE_COOKIES[token_type], state,
        max_age=STATE_MAX_AGE, httponly=True, samesite="lax",
        secure=settings.app_url.startswith("https"),
    )
    return resp


def _frontend(state: Optional[str], params: str) -> RedirectResponse:
    page = "onboarding" if state and state.endswith(ONBOARDING_SUFFIX) else "settings"
    return RedirectResponse(f"{settings.app_url}/{page}?{params}", status_code=307)


def _finish(
    token_type: str,
    request: Request,
    code: Optional[str],
    state: Optional[str],
    error: Optional[str],
    store: Callable[[Dict[str, Any]], None],
) -> RedirectResponse:
    cookie = STATE_COOKIES[token_type]
    expected = request.cookies.get(cookie)

    def done(params: str) -> RedirectResponse:
        resp = _frontend(state, params)
        resp.delete_cookie(cookie)
        return resp

    if error:
        logger.warning("LinkedIn %s authorization error: %s", token_type, error)
        return done(f"linkedin_error={ERR_PROVIDER}")
    if not code or not state or not expected or not secrets.compare_digest(state, expected):
        return done(f"linkedin_error={ERR_MISSING_CODE}")

    try:
        token_resp = oauth_app_for(token_type).exchange_code(code)
        store(token_resp)
    except SQLAlchemyError:
        logger.exception("Could not store LinkedIn %s token", token_type)
        return done(f"linkedin_error={ERR_PERSIST}")
    except (LinkedInAPIError, httpx.HTTPError) as e:
        logger.error("LinkedIn %s callback failed: %s", token_type, e)
        return done(f"linkedin_error={ERR_PROVIDER}")
    except Exception:
        logger.exception("Unexpected LinkedIn %s callback failure", token_type)
        return done(f"linkedin_error={ERR_UNEXPECTED}")

    param = "linkedin_connected=true" if token_type == "personal" else "community_connected=true"
    return done(param)


@router.get("/auth")
def personal_auth(onboarding: bool = False, user_id: str = Depends(get_current_user_id)) -> RedirectResponse:
    return _start("personal", onboarding)


@router.get("/callback")
def personal_callback(
    request: Request,
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> RedirectResponse:
    def store(token_resp: Dict[str, Any]) -> None:
        profile = LinkedInClient(token_resp["access_token"]).get_profile()
        crud_tokens.upsert_token(
            db, user_id, "personal",
            access_token=token_resp["access_token"],
            expires_in=token_resp.get("expires_in", 3600),
            refresh_token=token_resp.get("refresh_token"),
            linkedin_user_id=profile.id,
            profile_data=profile.as_profile_data(),
        )
        logger.info("Stored personal LinkedIn token for %s", user_id)

    return _finish("personal", request, code, state, error, store)


@router.get("/organizations/auth")
def community_auth(onboarding: bool = False, user_id: str = Depends(get_current_user_id)) -> RedirectResponse:
    return _start("community", onboarding)


@router.get("/organizations/callback")
def community_callback(
    request: Request,
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> RedirectResponse:
    def store(token_resp: Dict[str, Any]) -> None:
        orgs = LinkedInClient(token_resp["access_token"]).get_accessible_organizations()
        crud_tokens.upsert_token(
            db, user_id, "community",
            access_token=token_resp["access_token"],
            expires_in=token_resp.get("expires_in", 3600),
            refresh_token=token_resp.get("refresh_token"),
            profile_data={"organizations": orgs},
        )
        crud.upsert_organizations(db, user_id, orgs)
        logger.info("Stored community LinkedIn token for %s with %d organizations", user_id, len(orgs))

    return _finish("community", request, code, state, error, store)


@router.get("/organizations")
def organizations(user_id: str = Depends(get_current_user_id), db: Session = Depends(get_db)) -> Dict[str, Any]:
    rows = crud.list_organizations(db, user_id)
    return {
        "organizations": [
            {
                "id": r.linkedin_org_id,
                "name": r.org_name,
                "vanity_name": r.org_vanity_name,
                "logo_url": r.logo_url,
            }
            for r in rows
        ]
    }


@router.get("/status")
def status(user_id: str = Depends(get_current_user_id), db: Session = Depends(get_db)) -> Dict[str, Any]:
    tok = tokens.get_token(db, user_id, "personal")
    community = crud_tokens.get_active_token(db, user_id, "community")
    if tok is None:
        return {"connected": False, "community_connected": community is not None}
    return {
        "connected": True,
        "community_connected": community is not None,
        "linkedin_user_id": tok.linkedin_user_id,
        "profile": tok.profile_data,
        "expires_at": tok.token_expires_at.isoformat() if tok.token_expires_at else None,
    }


@router.get("/expiration-status")
def expiration_status(user_id: str = Depends(get_current_user_id), db: Session = Depends(get_db)) -> Dict[str, Any]:
    rows = crud_tokens.list_active_tokens(db, user_id)
    report = [
        {
            "type": t.type,
            "expires_at": t.token_expires_at.isoformat() if t.token_expires_at else None,
            "days_until_expiration": tokens.days_until_expiration(t.token_expires_at),
            "expiring_soon": tokens.is_token_expiring_soon(t.token_expires_at),
        }
        for t in rows
    ]
    expiries = [t.token_expires_at for t in rows if t.token_expires_at]
    return {
        "tokens": report,
        "expiring_soon": [r for r in report if r["expiring_soon"]],
        "earliest_expiration": min(expiries).isoformat() if expiries else None,
    }


@router.post("/revoke")
def revoke(body: RevokeIn, user_id: str = Depends(get_current_user_id), db: Session = Depends(get_db)) -> Dict[str, Any]:
    if body.type not in TOKEN_TYPES:
        raise InvalidRequestError(f"Invalid token type: {body.type}")
    tok = crud_tokens.get_token_row(db, user_id, body.type)
    if tok is None:
        raise NotFoundError("No LinkedIn connection to revoke")
    try:
        oauth_app_for(body.type).revoke(tok.access_token)
    except (LinkedInAPIError, LinkedbudError, httpx.HTTPError) as e:
        # the local row is removed either way
        logger.warning("LinkedIn %s revoke failed for %s: %s", body.type, user_id, e)
    crud_tokens.delete_token(db, tok)
    return {"success": True, "message": f"LinkedIn {body.type} connection revoked"}
