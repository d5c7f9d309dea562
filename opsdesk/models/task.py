"""
OpsDesk
Task domain models.

Models:
    - Task: kanban card on a proposal (project work)
    - TaskMember: extra assignees beyond the primary ``user_id``
    - PersonalTask: private to-do owned by one profile
"""

from opsdesk.models import db, iso, new_id, utcnow

# Kanban columns, left to right
TASK_COLUMNS = ("backlog", "todo", "in progress", "in review", "complete")
COMPLETED_STATUSES = ("complete", "completed", "done")


class Task(db.Model):
    __tablename__ = "tasks"
    __table_args__ = (
        db.Index("idx_tasks_proposal_order", "proposal_id", "order_index"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    title = db.Column(db.String(500), nullable=False)
    description = db.Column(db.Text, default="")
    status = db.Column(db.String(30), nullable=False, default="todo", index=True)
    order_index = db.Column(db.Integer, nullable=True, default=0)
    user_id = db.Column(
        db.String(36), db.ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True, index=True,
        comment="Primary assignee",
    )
    proposal_id = db.Column(db.String(36), db.ForeignKey("proposals.id", ondelete="CASCADE"), nullable=True, index=True)
    project_id = db.Column(db.String(36), db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=True, index=True)
    deliverable_id = db.Column(db.String(36), db.ForeignKey("deliverables.id", ondelete="SET NULL"), nullable=True)
    parent_id = db.Column(db.String(36), db.ForeignKey("tasks.id", ondelete="CASCADE"), nullable=True, index=True)
    created_by = db.Column(db.String(36), db.ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    project = db.relationship("Project", back_populates="tasks")
    proposal = db.relationship("Proposal", back_populates="tasks")
    members = db.relationship("TaskMember", cascade="all, delete-orphan", back_populates="task")
    subtasks = db.relationship(
        "Task", cascade="all, delete-orphan", backref=db.backref("parent", remote_side=[id]),
    )

    @property
    def member_ids(self):
        return [m.user_id for m in self.members]

    def to_dict(self, include_subtasks=True):
        d = {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "order_index": self.order_index,
            "user_id": self.user_id,
            "proposal_id": self.proposal_id,
            "project_id": self.project_id,
            "deliverable_id": self.deliverable_id,
            "parent_id": self.parent_id,
            "created_by": self.created_by,
            "member_ids": self.member_ids,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }
        if include_subtasks:
            d["subtasks"] = [s.to_dict(include_subtasks=False) for s in self.subtasks]
        return d

    def __repr__(self):
        return f"<Task {self.id}: {self.title[:40]} [{self.status}]>"


class TaskMember(db.Model):
    __tablename__ = "task_members"
    __table_args__ = (
        db.UniqueConstraint("task_id", "user_id", name="uq_task_member"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    task_id = db.Column(db.String(36), db.ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = db.Column(db.String(36), db.ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)

    task = db.relationship("Task", back_populates="members")

    def to_dict(self):
        return {
            "id": self.id,
            "task_id": self.task_id,
            "user_id": self.user_id,
            "created_at": iso(self.created_at),
        }


class PersonalTask(db.Model):
    __tablename__ = "personal_tasks"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    user_id = db.Column(db.String(36), db.ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    title = db.Column(db.String(500), nullable=False)
    description = db.Column(db.Text, default="")
    status = db.Column(db.String(30), nullable=False, default="todo")
    order_index = db.Column(db.Integer, nullable=True, default=0)
    parent_id = db.Column(db.String(36), db.ForeignKey("personal_tasks.id", ondelete="CASCADE"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    subtasks = db.relationship(
        "PersonalTask", cascade="all, delete-orphan", backref=db.backref("parent", remote_side=[id]),
    )

    def to_dict(self, include_subtasks=True):
        d = {
            "id": self.id,
            "user_id": self.user_id,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "order_index": self.order_index,
            "parent_id": self.parent_id,
            "created_at": iso(self.created_at),
            "updated_at": iso(self.updated_at),
        }
        if include_subtasks:
            d["subtasks"] = [s.to_dict(include_subtasks=False) for s in self.subtasks]
        return d
