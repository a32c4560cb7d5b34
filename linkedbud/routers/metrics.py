# linkedbud/routers/metrics.py
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from linkedbud.auth.session import get_current_user_id
from linkedbud.db import crud
from linkedbud.deps import get_db, require_cron_secret
from linkedbud.errors import InvalidRequestError, NotFoundError, UpstreamError
from linkedbud.services import metrics, tokens

router = APIRouter(prefix="/api/linkedin/metrics", tags=["metrics"])

class FetchMetricsIn(BaseModel):
    linkedin_post_id: Optional[str] = Field(None, alias="linkedinPostId")

    model_config = {"populate_by_name": True}

def _owned_record(db: Session, linkedin_post_id: Optional[str], user_id: str):
    if not linkedin_post_id:
        raise InvalidRequestError("LinkedIn post ID is required")
    record = crud.get_published_record(db, linkedin_post_id, user_id)
    if record is None:
        raise NotFoundError("Post not found")
    return record

@router.get("")
def get_metrics(
    linkedin_post_id: Optional[str] = Query(None, alias="linkedinPostId"),
    include_history: bool = Query(False, alias="includeHistory"),
    days: Optional[int] = Query(None, ge=1, le=365),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    record = _owned_record(db, linkedin_post_id, user_id)
    latest = metrics.latest(db, record.linkedin_post_id, user_id)
    out: Dict[str, Any] = {"latest": latest.to_dict() if latest else None}
    if include_history:
        out["history"] = [m.to_dict() for m in metrics.history(db, record.linkedin_post_id, user_id, days)]
    return out

@router.post("")
def fetch_metrics(body: FetchMetricsIn, user_id: str = Depends(get_current_user_id), db: Session = Depends(get_db)) -> Dict[str, Any]:
    record = _owned_record(db, body.linkedin_post_id, user_id)
    tok = tokens.get_token(db, user_id, "community")
    if tok is None:
        raise InvalidRequestError("Community management token missing or expired. Please connect community management in Settings.")
    row = metrics.fetch_and_store(db, record.linkedin_post_id, user_id, tok.access_token, record.organization_id)
    if row is None:
        raise UpstreamError("Failed to fetch metrics")
    return {"success": True, "metrics": row.to_dict()}

@router.post("/update-batch", dependencies=[Depends(require_cron_secret)])
def update_batch() -> Dict[str, Any]:
    summary = metrics.update_metrics_for_recent_posts()
    return {"success": True, "message": "Batch metrics update completed successfully", **summary}
