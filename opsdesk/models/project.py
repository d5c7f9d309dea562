"""
OpsDesk
Project domain models.

Models:
    - Project: a body of work for a client; owns proposals, tasks,
      channels, documents and credentials (ORM cascade on delete)
    - ProjectMember: team membership
    - ProjectDocument: link to an external document (brief, contract, ...)
"""

from opsdesk.models import db, iso, new_id, utcnow

PROJECT_STATUSES = ("active", "completed", "on_hold", "draft")


class Project(db.Model):
    __tablename__ = "projects"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")
    status = db.Column(db.String(20), nullable=False, default="active", index=True)
    client_id = db.Column(
        db.String(36), db.ForeignKey("clients.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    source_repo = db.Column(db.String(500))
    deployment_repo = db.Column(db.String(500))
    user_id = db.Column(
        db.String(36), db.ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True, index=True,
        comment="Owner / creator",
    )

    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    client = db.relationship("Client", back_populates="projects")
    members = db.relationship("ProjectMember", cascade="all, delete-orphan", back_populates="project")
    proposals = db.relationship(
        "Proposal", cascade="all, delete-orphan", back_populates="project",
        order_by="Proposal.order_index",
    )
    tasks = db.relationship("Task", cascade="all, delete-orphan", back_populates="project")
    channels = db.relationship("Channel", cascade="all, delete-orphan", back_populates="project")
    documents = db.relationship("ProjectDocument", cascade="all, delete-orphan", back_populates="project")
    credentials = db.relationship("Credential", cascade="all, delete-orphan", back_populates="project")

    @property
    def member_ids(self):
        return [m.user_id for m in self.members]

    def to_dict(self, include_members=True):
        d = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "status": self.status,
            "client_id": self.client_id,
            "client_name": self.client.full_name if self.client else None,
            "source_repo": self.source_repo,
            "deployment_repo": self.deployment_repo,
            "user_id": self.user_id,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }
        if include_members:
            d["member_ids"] = self.member_ids
        return d

    def __repr__(self):
        return f"<Project {self.id}: {self.name}>"


class ProjectMember(db.Model):
    __tablename__ = "project_members"
    __table_args__ = (
        db.UniqueConstraint("project_id", "user_id", name="uq_project_member"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    project_id = db.Column(db.String(36), db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = db.Column(db.String(36), db.ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    role = db.Column(db.String(50), default="member")
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    project = db.relationship("Project", back_populates="members")

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "user_id": self.user_id,
            "role": self.role,
            "created_at": iso(self.created_at),
        }


class ProjectDocument(db.Model):
    __tablename__ = "documents"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    project_id = db.Column(db.String(36), db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    title = db.Column(db.String(300), nullable=False)
    url = db.Column(db.String(1000))
    doc_type = db.Column(db.String(50), default="other")
    notes = db.Column(db.Text, default="")
    user_id = db.Column(db.String(36), db.ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    project = db.relationship("Project", back_populates="documents")

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "title": self.title,
            "url": self.url,
            "doc_type": self.doc_type,
            "notes": self.notes,
            "user_id": self.user_id,
            "created_at": iso(self.created_at),
        }
