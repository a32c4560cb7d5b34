# linkedbud/routers/linkedin_publish.py
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from linkedbud.auth.session import get_current_user_id
from linkedbud.deps import get_db
from linkedbud.services import publisher

router = APIRouter(prefix="/api/linkedin", tags=["linkedin"])

class PublishIn(BaseModel):
    post_id: Optional[int] = Field(None, alias="postId")
    content: Optional[str] = None
    publish_to: Optional[str] = Field("personal", alias="publishTo")

    model_config = {"populate_by_name": True}

@router.post("/publish")
def publish(body: PublishIn, user_id: str = Depends(get_current_user_id), db: Session = Depends(get_db)) -> Dict[str, Any]:
    return publisher.publish(db, user_id, body.post_id, body.content, body.publish_to)
