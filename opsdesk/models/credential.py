"""
OpsDesk
Credential vault model.

Models:
    - Credential: project secret; ``value`` is Fernet-sealed at rest when an
      ENCRYPTION_KEY is configured (see opsdesk.utils.crypto.seal)
"""

from opsdesk.models import db, iso, new_id, utcnow

CREDENTIAL_TYPES = (
    "API Key",
    "Email Password",
    "Password",
    "SSH Key",
    "Database URL",
    "Token",
    "Other",
)

MASK = "••••••••"


class Credential(db.Model):
    __tablename__ = "credentials"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    name = db.Column(db.String(200), nullable=False)
    type = db.Column(db.String(30), nullable=False, default="Other")
    value = db.Column(db.Text, nullable=False)
    notes = db.Column(db.Text, default="")
    project_id = db.Column(db.String(36), db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = db.Column(db.String(36), db.ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    project = db.relationship("Project", back_populates="credentials")

    def to_dict(self):
        """Masked representation; plaintext is only served by the reveal endpoint."""
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "value": MASK,
            "notes": self.notes,
            "project_id": self.project_id,
            "project_name": self.project.name if self.project else None,
            "user_id": self.user_id,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }
