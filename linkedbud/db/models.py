from sqlalchemy import (
    Boolean, Column, DateTime, Float, ForeignKey, Index, Integer, JSON, String, Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from linkedbud.db.base import Base, utcnow
from linkedbud.db import token_crypto

TOKEN_TYPES = ("personal", "community")
POST_STATUSES = ("DRAFT", "SCHEDULED", "PUBLISHED", "ARCHIVED")


class Post(Base):
    __tablename__ = "posts"
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    content = Column(Text, nullable=False)
    status = Column(String(16), nullable=False, default="DRAFT")
    # "personal" or a numeric LinkedIn organization id
    publish_target = Column(String(32), nullable=True, default="personal")
    source_url = Column(String(1024), nullable=True)
    source_title = Column(String(512), nullable=True)
    # storage paths (older rows may hold full public URLs)
    image_url = Column(String(1024), nullable=True)
    document_url = Column(String(1024), nullable=True)
    video_url = Column(String(1024), nullable=True)
    scheduled_publish_date = Column(DateTime, nullable=True)
    published_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    linkedin_posts = relationship("LinkedInPost", back_populates="post", order_by="LinkedInPost.id")


class LinkedInToken(Base):
    __tablename__ = "linkedin_tokens"
    __table_args__ = (UniqueConstraint("user_id", "type", name="uq_linkedin_tokens_user_type"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    type = Column(String(16), nullable=False)  # personal | community
    access_token_encrypted = Column(Text, nullable=False)
    refresh_token_encrypted = Column(Text, nullable=True)  # only issued to approved partners
    token_expires_at = Column(DateTime, nullable=True)
    linkedin_user_id = Column(String(64), nullable=True)
    profile_data = Column(JSON, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    @property
    def access_token(self) -> str:
        return token_crypto.decrypt_token(self.access_token_encrypted)

    @access_token.setter
    def access_token(self, value: str) -> None:
        self.access_token_encrypted = token_crypto.encrypt_token(value)

    @property
    def refresh_token(self) -> str | None:
        return token_crypto.decrypt_token(self.refresh_token_encrypted)

    @refresh_token.setter
    def refresh_token(self, value: str | None) -> None:
        self.refresh_token_encrypted = token_crypto.encrypt_token(value)


class LinkedInOrganization(Base):
    __tablename__ = "linkedin_organizations"
    __table_args__ = (UniqueConstraint("user_id", "linkedin_org_id", name="uq_linkedin_orgs_user_org"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    linkedin_org_id = Column(String(32), nullable=False)
    org_name = Column(String(512), nullable=True)
    org_vanity_name = Column(String(256), nullable=True)
    logo_url = Column(String(1024), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)


class LinkedInPost(Base):
    """One row per publish attempt, successful or not."""
    __tablename__ = "linkedin_posts"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    post_id = Column(Integer, ForeignKey("posts.id"), nullable=False, index=True)
    linkedin_post_id = Column(String(128), nullable=True, index=True)
    organization_id = Column(String(32), nullable=True)  # NULL = personal profile
    status = Column(String(16), nullable=False)  # PUBLISHED | FAILED
    content = Column(Text, nullable=True)
    error_message = Column(Text, nullable=True)
    published_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    post = relationship("Post", back_populates="linkedin_posts")


class LinkedInPostMetrics(Base):
    __tablename__ = "linkedin_post_metrics"
    __table_args__ = (Index("ix_metrics_post_user_fetched", "linkedin_post_id", "user_id", "fetched_at"),)

    id = Column(Integer, primary_key=True, index=True)
    linkedin_post_id = Column(String(128), nullable=False)
    user_id = Column(String(64), nullable=False)
    impressions = Column(Integer, nullable=False, default=0)
    likes = Column(Integer, nullable=False, default=0)
    comments = Column(Integer, nullable=False, default=0)
    shares = Column(Integer, nullable=False, default=0)
    clicks = Column(Integer, nullable=False, default=0)
    engagement_rate = Column(Float, nullable=True)
    # UTC midnight of the day the snapshot belongs to
    fetched_at = Column(DateTime, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "linkedin_post_id": self.linkedin_post_id,
            "user_id": self.user_id,
            "impressions": self.impressions,
            "likes": self.likes,
            "comments": self.comments,
            "shares": self.shares,
            "clicks": self.clicks,
            "engagement_rate": self.engagement_rate,
            "fetched_at": self.fetched_at.isoformat() if self.fetched_at else None,
        }
