"""
OpsDesk
Chat domain models.

Models:
    - Channel: named room (global, per project, per proposal) or a DM pair
    - Message: one chat message
"""

from opsdesk.models import db, iso, new_id, utcnow

DM_PREFIX = "dm--"


def dm_channel_name(user_a: str, user_b: str) -> str:
    """Deterministic DM channel name; ids are sorted so both sides agree."""
    first, second = sorted((str(user_a), str(user_b)))
    return f"{DM_PREFIX}{first}--{second}"


class Channel(db.Model):
    __tablename__ = "channels"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    name = db.Column(db.String(200), unique=True, nullable=False, index=True)
    description = db.Column(db.Text, default="")
    project_id = db.Column(db.String(36), db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=True, index=True)
    proposal_id = db.Column(
        db.String(36), db.ForeignKey("proposals.id", ondelete="CASCADE"), nullable=True, unique=True,
    )
    created_by = db.Column(db.String(36), db.ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    project = db.relationship("Project", back_populates="channels")
    proposal = db.relationship("Proposal", back_populates="channel")
    messages = db.relationship("Message", cascade="all, delete-orphan", back_populates="channel", lazy="dynamic")

    @property
    def is_dm(self) -> bool:
        return (self.name or "").startswith(DM_PREFIX)

    @property
    def dm_participants(self) -> list[str]:
        if not self.is_dm:
            return []
        return self.name[len(DM_PREFIX):].split("--")

    @property
    def user_id(self):
        return self.created_by

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "project_id": self.project_id,
            "proposal_id": self.proposal_id,
            "created_by": self.created_by,
            "is_dm": self.is_dm,
            "participants": self.dm_participants,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }

    def __repr__(self):
        return f"<Channel {self.id}: {self.name}>"


class Message(db.Model):
    __tablename__ = "messages"
    __table_args__ = (
        db.Index("idx_messages_channel_created", "channel_id", "created_at"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    channel_id = db.Column(db.String(36), db.ForeignKey("channels.id", ondelete="CASCADE"), nullable=False)
    user_id = db.Column(db.String(36), db.ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True)
    content = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    channel = db.relationship("Channel", back_populates="messages")
    author = db.relationship("Profile", lazy="joined")

    def to_dict(self):
        return {
            "id": self.id,
            "channel_id": self.channel_id,
            "user_id": self.user_id,
            "content": self.content,
            "author": self.author.brief() if self.author else None,
            "created_at": iso(self.created_at),
        }
