"""
OpsDesk
Client model.

Models:
    - Client: customer contact record, optionally linked to a client-role login.
"""

from opsdesk.models import db, iso, new_id, utcnow


class Client(db.Model):
    __tablename__ = "clients"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    first_name = db.Column(db.String(100), nullable=False)
    last_name = db.Column(db.String(100), default="")
    email = db.Column(db.String(255), index=True)
    phone = db.Column(db.String(50))
    address = db.Column(db.String(500))
    city = db.Column(db.String(100))
    state = db.Column(db.String(100))
    country = db.Column(db.String(100))
    timezone = db.Column(db.String(64), comment="IANA zone name, e.g. Europe/Berlin")
    notes = db.Column(db.Text, default="")
    user_id = db.Column(
        db.String(36), db.ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True, index=True,
        comment="Linked client-role login, if enabled",
    )

    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    projects = db.relationship("Project", back_populates="client", lazy="dynamic")

    @property
    def full_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p)

    def to_dict(self):
        return {
            "id": self.id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "full_name": self.full_name,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "city": self.city,
            "state": self.state,
            "country": self.country,
            "timezone": self.timezone,
            "notes": self.notes,
            "user_id": self.user_id,
            "login_enabled": bool(self.user_id),
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }

    def __repr__(self):
        return f"<Client {self.id}: {self.full_name}>"
