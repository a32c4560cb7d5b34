from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session, selectinload

from linkedbud.db.base import utcnow
from linkedbud.db import models

# --- posts (drafts) ---

def create_post(
    db: Session,
    user_id: str,
    content: str,
    publish_target: str = "personal",
    status: str = "DRAFT",
    **fields: Any,
) -> models.Post:
    obj = models.Post(user_id=user_id, content=content, status=status, publish_target=publish_target, **fields)
    db.add(obj)
    db.commit()
    db.refresh(obj)
    return obj

def get_post(db: Session, post_id: int, user_id: str) -> Optional[models.Post]:
    return db.query(models.Post).filter(models.Post.id == post_id, models.Post.user_id == user_id).first()

def list_posts(
    db: Session,
    user_id: str,
    status: Optional[str] = None,
    publish_target: Optional[str] = None,
    limit: int = 50,
) -> List[models.Post]:
    q = db.query(models.Post).filter(models.Post.user_id == user_id)
    if status:
        q = q.filter(models.Post.status == status)
    if publish_target:
        q = q.filter(models.Post.publish_target == publish_target)
    return q.order_by(models.Post.id.desc()).limit(limit).all()

def update_post_attachments(db: Session, post: models.Post, **paths: Optional[str]) -> models.Post:
    for column, value in paths.items():
        setattr(post, column, value)
    db.add(post)
    db.commit()
    db.refresh(post)
    return post

def mark_post_published(db: Session, post_id: int, user_id: str, publish_target: str) -> bool:
    post = get_post(db, post_id, user_id)
    if not post:
        return False
    post.status = "PUBLISHED"
    post.published_at = utcnow()
    post.publish_target = publish_target
    db.add(post)
    db.commit()
    return True

def posts_for_analytics(db: Session, user_id: str) -> List[models.Post]:
    return (
        db.query(models.Post)
        .options(selectinload(models.Post.linkedin_posts))
        .filter(models.Post.user_id == user_id)
        .all()
    )

# --- organizations ---

def upsert_organizations(db: Session, user_id: str, orgs: Iterable[Dict[str, Any]]) -> int:
    count = 0
    for org in orgs:
        org_id = str(org["id"])
        row = (
            db.query(models.LinkedInOrganization)
            .filter(
                models.LinkedInOrganization.user_id == user_id,
                models.LinkedInOrganization.linkedin_org_id == org_id,
            )
            .first()
        )
        if row is None:
            row = models.LinkedInOrganization(user_id=user_id, linkedin_org_id=org_id)
        row.org_name = org.get("name")
        row.org_vanity_name = org.get("vanity_name")
        row.logo_url = org.get("logo_url")
        row.updated_at = utcnow()
        db.add(row)
        count += 1
    db.commit()
    return count

def list_organizations(db: Session, user_id: str) -> List[models.LinkedInOrganization]:
    return (
        db.query(models.LinkedInOrganization)
        .filter(models.LinkedInOrganization.user_id == user_id)
        .order_by(models.LinkedInOrganization.org_name.asc())
        .all()
    )

def get_organization(db: Session, user_id: str, linkedin_org_id: str) -> Optional[models.LinkedInOrganization]:
    return (
        db.query(models.LinkedInOrganization)
        .filter(
            models.LinkedInOrganization.user_id == user_id,
            models.LinkedInOrganization.linkedin_org_id == linkedin_org_id,
        )
        .first()
    )

def organization_names(db: Session, user_id: str, org_ids: Iterable[str]) -> Dict[str, str]:
    ids = list(set(org_ids))
    if not ids:
        return {}
    rows = (
        db.query(models.LinkedInOrganization)
        .filter(
            models.LinkedInOrganization.user_id == user_id,
            models.LinkedInOrganization.linkedin_org_id.in_(ids),
        )
        .all()
    )
    return {r.linkedin_org_id: r.org_name or r.linkedin_org_id for r in rows}

# --- published post records ---

def create_linkedin_post_record(
    db: Session,
    user_id: str,
    post_id: int,
    content: str,
    status: str,
    linkedin_post_id: Optional[str] = None,
    organization_id: Optional[str] = None,
    error_message: Optional[str] = None,
) -> models.LinkedInPost:
    row = models.LinkedInPost(
        user_id=user_id,
        post_id=post_id,
        content=content,
        status=status,
        organization_id=organization_id,
    )
    if status == "PUBLISHED":
        row.linkedin_post_id = linkedin_post_id
        row.published_at = utcnow()
    else:
        row.error_message = error_message
    db.add(row)
    db.commit()
    db.refresh(row)
    return row

def get_published_record(db: Session, linkedin_post_id: str, user_id: Optional[str] = None) -> Optional[models.LinkedInPost]:
    q = db.query(models.LinkedInPost).filter(
        models.LinkedInPost.linkedin_post_id == linkedin_post_id,
        models.LinkedInPost.status == "PUBLISHED",
    )
    if user_id is not None:
        q = q.filter(models.LinkedInPost.user_id == user_id)
    return q.first()

def recent_published_records(db: Session, since: datetime) -> List[models.LinkedInPost]:
    return (
        db.query(models.LinkedInPost)
        .filter(
            models.LinkedInPost.status == "PUBLISHED",
            models.LinkedInPost.linkedin_post_id.isnot(None),
            models.LinkedInPost.published_at >= since,
        )
        .order_by(models.LinkedInPost.id.asc())
        .all()
    )

# --- metrics snapshots ---

def get_snapshot_for_day(db: Session, linkedin_post_id: str, user_id: str, day: datetime) -> Optional[models.LinkedInPostMetrics]:
    return (
        db.query(models.LinkedInPostMetrics)
        .filter(
            models.LinkedInPostMetrics.linkedin_post_id == linkedin_post_id,
            models.LinkedInPostMetrics.user_id == user_id,
            models.LinkedInPostMetrics.fetched_at >= day,
            models.LinkedInPostMetrics.fetched_at < day + timedelta(days=1),
        )
        .order_by(models.LinkedInPostMetrics.id.asc())
        .first()
    )

def get_latest_snapshot(db: Session, linkedin_post_id: str, user_id: str) -> Optional[models.LinkedInPostMetrics]:
    return (
        db.query(models.LinkedInPostMetrics)
        .filter(
            models.LinkedInPostMetrics.linkedin_post_id == linkedin_post_id,
            models.LinkedInPostMetrics.user_id == user_id,
        )
        .order_by(models.LinkedInPostMetrics.fetched_at.desc(), models.LinkedInPostMetrics.id.desc())
        .first()
    )

def get_snapshot_history(
    db: Session,
    linkedin_post_id: str,
    user_id: str,
    since: Optional[datetime] = None,
) -> List[models.LinkedInPostMetrics]:
    q = db.query(models.LinkedInPostMetrics).filter(
        models.LinkedInPostMetrics.linkedin_post_id == linkedin_post_id,
        models.LinkedInPostMetrics.user_id == user_id,
    )
    if since is not None:
        q = q.filter(models.LinkedInPostMetrics.fetched_at >= since)
    return q.order_by(models.LinkedInPostMetrics.fetched_at.asc()).all()

def snapshots_for_user(db: Session, user_id: str, until: datetime) -> List[models.LinkedInPostMetrics]:
    return (
        db.query(models.LinkedInPostMetrics)
        .filter(
            models.LinkedInPostMetrics.user_id == user_id,
            models.LinkedInPostMetrics.fetched_at < until,
        )
        .order_by(models.LinkedInPostMetrics.fetched_at.asc())
        .all()
    )
