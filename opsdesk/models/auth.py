"""
OpsDesk
Identity models.

Models:
    - Profile: login account + display profile (admin / employee / client)
    - CustomRole: named permission bundle managed by admins
    - PinLog: append-only trail of PIN setup / verification / reset attempts
"""

from opsdesk.models import db, iso, new_id, utcnow

ROLES = ("admin", "employee", "client")

PIN_ATTEMPT_TYPES = {
    "setup",
    "update",
    "setup_blocked",
    "update_blocked",
    "verification",
    "reset_failed",
    "reset_success",
}


class Profile(db.Model):
    """
    One row per person who can sign in.

    ``pin_hash`` holds the bcrypt hash of the 4-digit screen-lock PIN.
    """

    __tablename__ = "profiles"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255))
    full_name = db.Column(db.String(200), default="")
    username = db.Column(db.String(100), index=True)
    avatar_url = db.Column(db.String(1000))
    role = db.Column(db.String(20), nullable=False, default="employee", comment="admin | employee | client")
    organization_id = db.Column(
        db.String(36), db.ForeignKey("organizations.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    pin_hash = db.Column(db.String(255))
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    last_login_at = db.Column(db.DateTime(timezone=True))

    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    organization = db.relationship("Organization", lazy="joined")

    @property
    def has_pin(self) -> bool:
        return bool(self.pin_hash)

    def brief(self):
        """Author / assignee fields embedded in other payloads."""
        return {
            "id": self.id,
            "full_name": self.full_name,
            "username": self.username,
            "avatar_url": self.avatar_url,
        }

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "full_name": self.full_name,
            "username": self.username,
            "avatar_url": self.avatar_url,
            "role": self.role,
            "organization_id": self.organization_id,
            "has_pin": self.has_pin,
            "is_active": self.is_active,
            "last_login_at": iso(self.last_login_at),
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }

    def __repr__(self):
        return f"<Profile {self.id}: {self.email} ({self.role})>"


class CustomRole(db.Model):
    __tablename__ = "custom_roles"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    name = db.Column(db.String(100), nullable=False)
    slug = db.Column(db.String(100), unique=True, nullable=False, index=True)
    description = db.Column(db.Text, default="")
    permissions = db.Column(db.JSON, nullable=False, default=list)
    is_system = db.Column(db.Boolean, default=False, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "description": self.description,
            "permissions": list(self.permissions or []),
            "is_system": self.is_system,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }

    def __repr__(self):
        return f"<CustomRole {self.slug}>"


class PinLog(db.Model):
    """
    PIN attempt trail. ``pin_entered`` keeps the literal value only for
    blocked (blacklisted) attempts; every other attempt stores a mask.
    """

    __tablename__ = "pin_logs"
    __table_args__ = (
        db.Index("idx_pin_logs_user", "user_id", "created_at"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    user_id = db.Column(db.String(36), db.ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    pin_entered = db.Column(db.String(10))
    attempt_type = db.Column(db.String(20), nullable=False)
    is_success = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "pin_entered": self.pin_entered,
            "attempt_type": self.attempt_type,
            "is_success": self.is_success,
            "created_at": iso(self.created_at),
        }
