"""
OpsDesk
Organization model.

Models:
    - Organization: company profile, billing contact and VAT settings.
"""

from opsdesk.models import db, iso, new_id, utcnow


class Organization(db.Model):
    __tablename__ = "organizations"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    name = db.Column(db.String(200), nullable=False)
    email = db.Column(db.String(255))
    billing_email = db.Column(db.String(255))
    website = db.Column(db.String(500))
    logo = db.Column(db.String(1000))
    vat_enabled = db.Column(db.Boolean, default=False, nullable=False)
    vat_rate = db.Column(db.Float, default=0.0, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "billing_email": self.billing_email,
            "website": self.website,
            "logo": self.logo,
            "vat_enabled": self.vat_enabled,
            "vat_rate": self.vat_rate,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }

    def __repr__(self):
        return f"<Organization {self.id}: {self.name}>"
