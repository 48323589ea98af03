"""
TaskHub
Audit trail.

Every task and justification mutation appends one ``AuditLog`` row inside
the same transaction as the change itself. Rows are never updated.

Actions are namespaced by entity (``task.update``, ``evidence.attach``) and
validated against ``AUDIT_ACTIONS`` so a typo fails the request instead of
producing an orphan action name in the trail.
"""

import json
from datetime import UTC, datetime

from taskhub.models import db

AUDIT_ACTIONS = frozenset({
    "task.create",
    "task.update",
    "task.delete",
    "task.duplicate",
    "task.unblock",
    "justification.create",
    "justification.approve",
    "justification.refuse",
    "justification.refuse_and_block",
    "evidence.attach",
    "evidence.remove",
    "task_evidence.attach",
    "task_evidence.remove",
})

AUDIT_ENTITY_TYPES = frozenset(action.split(".", 1)[0] for action in AUDIT_ACTIONS)


def _utcnow():
    return datetime.now(UTC)


class AuditLog(db.Model):
    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("idx_audit_entity", "entity_type", "entity_id"),
        db.Index("idx_audit_actor", "actor"),
        db.Index("idx_audit_ts", "timestamp"),
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id", ondelete="CASCADE"), index=True)

    entity_type = db.Column(db.String(30), nullable=False)
    # Task and justification ids are UUID strings; justification evidences reuse their
    # justification's id, task evidences carry their own.
    entity_id = db.Column(db.String(36), nullable=False)
    action = db.Column(db.String(60), nullable=False)

    actor = db.Column(db.String(200), nullable=False, default="system", comment="e-mail, or 'system' for jobs")
    actor_user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), index=True)

    diff_json = db.Column(db.Text, default="{}", comment='{"field": {"old": ..., "new": ...}}')
    timestamp = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    @property
    def diff(self) -> dict:
        if not self.diff_json:
            return {}
        try:
            loaded = json.loads(self.diff_json)
        except ValueError:
            return {}
        return loaded if isinstance(loaded, dict) else {}

    def to_dict(self) -> dict:
        data = {c: getattr(self, c) for c in ("id", "tenant_id", "entity_type", "entity_id", "action", "actor", "actor_user_id")}
        data["diff"] = self.diff
        data["timestamp"] = self.timestamp.isoformat() if self.timestamp else None
        return data

    def __repr__(self):
        return f"<AuditLog {self.action} {self.entity_type}:{self.entity_id}>"


def write_audit(*, tenant_id: int, entity_type: str, entity_id, action: str,
                actor: str = "system", actor_user_id: int | None = None,
                diff: dict | None = None) -> AuditLog:
    """Add an audit row to the current session and flush it.

    The caller owns the commit, so the row lives or dies with the mutation
    it describes.
    """
    if action not in AUDIT_ACTIONS or not action.startswith(f"{entity_type}."):
        raise ValueError(f"Unknown audit event {entity_type}/{action}")

    entry = AuditLog(
        tenant_id=tenant_id,
        entity_type=entity_type,
        entity_id=str(entity_id),
        action=action,
        actor=actor or "system",
        actor_user_id=actor_user_id,
        diff_json=json.dumps(diff or {}, default=str),
    )
    db.session.add(entry)
    db.session.flush()
    return entry
