from datetime import datetime, timezone

from flask_login import UserMixin

from tagshelf.extensions import db, login_manager


OWNER_ID = "owner"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


bookmark_tags = db.Table(
    "bookmark_tags",
    db.Column(
        "bookmark_id",
        db.Integer,
        db.ForeignKey("bookmarks.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    db.Column(
        "tag_id",
        db.Integer,
        db.ForeignKey("tags.id", ondelete="CASCADE"),
        primary_key=True,
    ),
)


class Owner(UserMixin):
    """The single privileged account. Its password hash lives in config."""

    id = OWNER_ID


@login_manager.user_loader
def load_user(user_id: str):
    if user_id == OWNER_ID:
        return Owner()
    return None


class Bookmark(db.Model):
    __tablename__ = "bookmarks"

    id = db.Column(db.Integer, primary_key=True)
    url = db.Column(db.Text, nullable=False, unique=True)
    title = db.Column(db.String(500), nullable=True)
    description = db.Column(db.Text, nullable=True)
    is_private = db.Column(db.Boolean, nullable=False, default=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    tags = db.relationship("Tag", secondary=bookmark_tags, backref="bookmarks")

    __table_args__ = (db.Index("ix_bookmark_created", "created_at", "id"),)

    @property
    def tag_names(self) -> list[str]:
        return sorted(tag.name for tag in self.tags)

    def as_dict(self):
        return {
            "id": self.id,
            "url": self.url,
            "title": self.title,
            "description": self.description,
            "is_private": bool(self.is_private),
            "tags": self.tag_names,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


class Tag(db.Model):
    __tablename__ = "tags"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False, unique=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)


class ImportRecord(db.Model):
    __tablename__ = "imports"

    id = db.Column(db.Integer, primary_key=True)
    filename = db.Column(db.String(255), nullable=True)
    bookmark_ids = db.Column(db.JSON, nullable=False, default=list)
    created_count = db.Column(db.Integer, nullable=False, default=0)
    updated_count = db.Column(db.Integer, nullable=False, default=0)
    additional_tags = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def as_dict(self):
        bookmark_ids = list(self.bookmark_ids or [])
        return {
            "id": self.id,
            "filename": self.filename,
            "bookmark_ids": bookmark_ids,
            "bookmark_count": len(bookmark_ids),
            "created_count": self.created_count,
            "updated_count": self.updated_count,
            "additional_tags": self.additional_tags,
            "created_at": self.created_at.isoformat(),
        }


class Setting(db.Model):
    __tablename__ = "settings"

    key = db.Column(db.String(64), primary_key=True)
    value = db.Column(db.Text, nullable=False, default="")
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )


class LoginAttempt(db.Model):
    __tablename__ = "login_attempts"

    id = db.Column(db.Integer, primary_key=True)
    ip_address = db.Column(db.String(64), nullable=False, index=True)
    success = db.Column(db.Boolean, nullable=False, default=False)
    attempt_time = db.Column(
        db.DateTime(timezone=True), nullable=False, default=utcnow, index=True
    )
