# linkedbud/routers/posts.py
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.orm import Session

from linkedbud.auth.session import get_current_user_id
from linkedbud.db import crud
from linkedbud.db.models import POST_STATUSES, Post
from linkedbud.deps import get_db
from linkedbud.errors import AuthorizationError, InvalidRequestError, LinkedbudError, NotFoundError, UpstreamError
from linkedbud.services.linkedin_api import content_type_for
from linkedbud.services.publisher import resolve_target
from linkedbud.services.storage import (
    StorageClient,
    StorageError,
    extract_file_path_from_url,
    generate_storage_path,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/posts", tags=["posts"])

MAX_VIDEO_BYTES = 100 * 1024 * 1024
ATTACHMENT_COLUMNS = {"image": "image_url", "document": "document_url", "video": "video_url"}


def _serialize(post: Post, signed: Optional[Dict[str, Optional[str]]] = None) -> Dict[str, Any]:
    out = {
        "id": post.id,
        "content": post.content,
        "status": post.status,
        "publish_target": post.publish_target,
        "source_url": post.source_url,
        "source_title": post.source_title,
        "image_url": post.image_url,
        "document_url": post.document_url,
        "video_url": post.video_url,
        "scheduled_publish_date": post.scheduled_publish_date.isoformat() if post.scheduled_publish_date else None,
        "published_at": post.published_at.isoformat() if post.published_at else None,
        "created_at": post.created_at.isoformat() if post.created_at else None,
        "linkedin_posts": [
            {
                "linkedin_post_id": r.linkedin_post_id,
                "organization_id": r.organization_id,
                "status": r.status,
                "published_at": r.published_at.isoformat() if r.published_at else None,
            }
            for r in post.linkedin_posts
        ],
    }
    if signed is not None:
        out["signed_urls"] = signed
    return out


def _read(upload: Optional[UploadFile]) -> Optional[bytes]:
    if upload is None or not upload.filename:
        return None
    data = upload.file.read()
    return data or None


@router.post("")
def create_post(
    content: str = Form(""),
    publish_target: str = Form("personal", alias="publishTarget"),
    source_url: Optional[str] = Form(None, alias="sourceUrl"),
    source_title: Optional[str] = Form(None, alias="sourceTitle"),
    scheduled_publish_date: Optional[datetime] = Form(None, alias="scheduledPublishDate"),
    image_file: Optional[UploadFile] = File(None, alias="imageFile"),
    document_file: Optional[UploadFile] = File(None, alias="documentFile"),
    video_file: Optional[UploadFile] = File(None, alias="videoFile"),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    if not content or not content.strip():
        raise InvalidRequestError("content is required and must be a non-empty string")
    _, _, organization_id = resolve_target(publish_target)
    if organization_id and crud.get_organization(db, user_id, organization_id) is None:
        raise AuthorizationError("Organization not found or you don't have access to it.")

    files = {
        "image": (image_file, _read(image_file)),
        "document": (document_file, _read(document_file)),
        "video": (video_file, _read(video_file)),
    }
    video_data = files["video"][1]
    if video_data is not None and len(video_data) > MAX_VIDEO_BYTES:
        raise InvalidRequestError("Video file is too large. Maximum size is 100MB.")

    status = "SCHEDULED" if scheduled_publish_date else "DRAFT"
    post = crud.create_post(
        db, user_id, content.strip(),
        publish_target=publish_target or "personal",
        status=status,
        source_url=source_url,
        source_title=source_title,
        scheduled_publish_date=scheduled_publish_date,
    )

    if not any(data for _, data in files.values()):
        return {"success": True, "post": _serialize(post)}

    try:
        storage = StorageClient()
    except LinkedbudError as e:
        storage = None
        logger.warning("Storage unavailable, saving post %s without attachments: %s", post.id, e.message)

    paths: Dict[str, Optional[str]] = {}
    for kind, (upload, data) in files.items():
        if data is None:
            continue
        try:
            if storage is None:
                raise StorageError("storage is not configured")
            path = generate_storage_path(user_id, post.id, kind, upload.filename)
            paths[ATTACHMENT_COLUMNS[kind]] = storage.upload(path, data, upload.content_type or content_type_for(kind, upload.filename))
        except StorageError as e:
            if kind == "video":
                logger.error("Video upload failed for post %s: %s", post.id, e)
                raise UpstreamError(f"Failed to upload video file: {e}")
            logger.warning("Saving post %s without %s: %s", post.id, kind, e)

    if paths:
        post = crud.update_post_attachments(db, post, **paths)
    return {"success": True, "post": _serialize(post)}


@router.get("")
def list_posts(
    status: Optional[str] = None,
    publish_target: Optional[str] = None,
    limit: int = 50,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    if status and status not in POST_STATUSES:
        raise InvalidRequestError(f"Invalid status: {status}")
    rows = crud.list_posts(db, user_id, status=status, publish_target=publish_target, limit=min(max(limit, 1), 200))
    return {"posts": [_serialize(p) for p in rows], "count": len(rows)}


@router.get("/{post_id}")
def get_post(post_id: int, user_id: str = Depends(get_current_user_id), db: Session = Depends(get_db)) -> Dict[str, Any]:
    post = crud.get_post(db, post_id, user_id)
    if post is None:
        raise NotFoundError("Post not found")

    signed: Dict[str, Optional[str]] = {}
    stored = {kind: getattr(post, col) for kind, col in ATTACHMENT_COLUMNS.items() if getattr(post, col)}
    if stored:
        try:
            storage = StorageClient()
        except LinkedbudError as e:
            logger.warning("Storage unavailable, no signed URLs for post %s: %s", post.id, e.message)
            storage = None
        for kind, value in stored.items():
            path = extract_file_path_from_url(value)
            signed[kind] = storage.signed_url(path) if storage and path else None
    return {"post": _serialize(post, signed)}
