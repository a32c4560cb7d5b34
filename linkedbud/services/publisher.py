# linkedbud/services/publisher.py
import logging
import re
from typing import Any, Dict, Optional

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from linkedbud.db import crud
from linkedbud.errors import (
    AuthorizationError,
    InvalidRequestError,
    LinkedbudError,
    NotFoundError,
    UpstreamError,
)
from linkedbud.services import tokens
from linkedbud.services.linkedin_api import LinkedInAPIError, LinkedInClient
from linkedbud.services.storage import (
    StorageClient,
    StorageError,
    extract_file_path_from_url,
    filename_from_path,
)

logger = logging.getLogger(__name__)

ORG_ID_RE = re.compile(r"^\d+$")

MISSING_TOKEN_MESSAGES = {
    "personal": "LinkedIn account not connected or token expired. Please reconnect your LinkedIn account in Settings.",
    "community": "Community management token missing or expired. Please connect community management in Settings.",
}


class AttachmentError(Exception):
    pass


def resolve_target(publish_target: Optional[str]) -> tuple[str, Optional[str], Optional[str]]:
    """Map a publish target to (token_type, author_urn, organization_id).

    Personal posts carry no author urn so LinkedIn posts as the token owner.
    """
    target = publish_target or "personal"
    if target == "personal":
        return "personal", None, None
    if not isinstance(target, str) or not ORG_ID_RE.match(target):
        raise InvalidRequestError(f"Invalid organization ID: {target}. Organization ID must be numeric.")
    return "community", f"urn:li:organization:{target}", target


def _upload_attachment(
    client: LinkedInClient,
    storage: Optional[StorageClient],
    kind: str,
    stored: str,
    author_urn: Optional[str],
) -> str:
    path = extract_file_path_from_url(stored)
    if not path:
        raise AttachmentError(f"could not resolve storage path for {kind}")
    if storage is None:
        raise AttachmentError("storage is not configured")
    data = storage.download(path)
    if data is None:
        raise AttachmentError(f"could not download {kind} from storage")
    upload = {
        "image": client.upload_image_asset,
        "document": client.upload_document_asset,
        "video": client.upload_video_asset,
    }[kind]
    return upload(data, filename_from_path(path), author_urn)


def _storage_or_none() -> Optional[StorageClient]:
    try:
        return StorageClient()
    except LinkedbudError as e:
        logger.warning("Storage unavailable for attachments: %s", e.message)
        return None


def _record_attempt(db: Session, user_id: str, post_id: int, content: str, status: str, **fields) -> bool:
    try:
        crud.create_linkedin_post_record(db, user_id, post_id, content, status, **fields)
        return True
    except SQLAlchemyError:
        db.rollback()
        logger.exception(
            "Could not record %s publish of post %s (linkedin id %s)",
            status, post_id, fields.get("linkedin_post_id"),
        )
        return False


def publish(
    db: Session,
    user_id: str,
    post_id: Optional[int],
    content: Optional[str],
    publish_target: Optional[str] = "personal",
) -> Dict[str, Any]:
    if not post_id or not content:
        raise InvalidRequestError("Post ID and content are required")

    target = publish_target or "personal"
    token_type, author_urn, organization_id = resolve_target(target)

    if organization_id and crud.get_organization(db, user_id, organization_id) is None:
        raise AuthorizationError("You do not have access to this organization")

    post = crud.get_post(db, post_id, user_id)
    if post is None:
        raise NotFoundError("Post not found")

    tok = tokens.get_token(db, user_id, token_type)
    if tok is None:
        raise InvalidRequestError(MISSING_TOKEN_MESSAGES[token_type])

    logger.info("Publishing post %s for %s to %s", post_id, user_id, target)
    client = LinkedInClient(tok.access_token)

    try:
        assets: Dict[str, Optional[str]] = {"image": None, "document": None, "video": None}
        attachments = {"image": post.image_url, "document": post.document_url, "video": post.video_url}
        storage = _storage_or_none() if any(attachments.values()) else None

        for kind, stored in attachments.items():
            if not stored:
                continue
            try:
                assets[kind] = _upload_attachment(client, storage, kind, stored, author_urn)
            except (AttachmentError, StorageError, LinkedInAPIError, httpx.HTTPError, KeyError, ValueError) as e:
                if kind == "video":
                    raise UpstreamError(f"Failed to upload video to LinkedIn: {e}") from e
                logger.warning("Publishing post %s without %s: %s", post_id, kind, e)

        linkedin_post_id = client.publish_post(
            content,
            author_urn=author_urn,
            image_asset_urn=assets["image"],
            document_asset_urn=assets["document"],
            video_asset_urn=assets["video"],
        )
    except (UpstreamError, LinkedInAPIError, httpx.HTTPError, ValueError) as e:
        logger.error("LinkedIn publish failed for post %s: %s", post_id, e)
        _record_attempt(
            db, user_id, post_id, content, "FAILED",
            organization_id=organization_id,
            error_message=str(e),
        )
        if isinstance(e, UpstreamError):
            raise
        raise UpstreamError("Failed to publish to LinkedIn") from e

    # the post is live on LinkedIn from here on; local bookkeeping failures are logged, not reported
    _record_attempt(
        db, user_id, post_id, content, "PUBLISHED",
        linkedin_post_id=linkedin_post_id,
        organization_id=organization_id,
    )
    try:
        updated = crud.mark_post_published(db, post_id, user_id, target)
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Post %s published as %s but draft status could not be saved", post_id, linkedin_post_id)
    else:
        if not updated:
            logger.error("Post %s published as %s but draft status was not updated", post_id, linkedin_post_id)
    logger.info("Published post %s as %s", post_id, linkedin_post_id)

    # metrics are left to the scheduled batch job; LinkedIn has none yet
    return {
        "success": True,
        "linkedin_post_id": linkedin_post_id,
        "message": "Post published to LinkedIn successfully",
        "publish_to": target,
    }
