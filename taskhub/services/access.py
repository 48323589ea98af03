"""
Access control predicates.

All functions here are pure: they look only at the actor and the objects
passed in and never touch the database or the request. Services call them
after loading the row (already filtered by tenant) and translate a False
into NotFoundError (cannot see) or ForbiddenError (can see, cannot act).

Role semantics:
    ADMIN   every task of the tenant
    LEADER  tasks whose area equals the leader's area
    USER    tasks whose responsible e-mail is the user's own
"""

from __future__ import annotations

import logging

from taskhub.core.actor import Actor, AdminRole, LeaderRole, UserRole, unknown_role
from taskhub.core.exceptions import ReadOnlySessionError
from taskhub.services.task_patch import TaskPatch

logger = logging.getLogger(__name__)


def _same_email(a: str | None, b: str | None) -> bool:
    return (a or "").strip().lower() == (b or "").strip().lower()


def can_see(actor: Actor, task) -> bool:
    if task.tenant_id != actor.tenant_id:
        return False
    role = actor.role
    if isinstance(role, AdminRole):
        return True
    if isinstance(role, LeaderRole):
        return task.area == role.area
    if isinstance(role, UserRole):
        return _same_email(task.responsavel_email, role.email)
    raise unknown_role(role)


def can_edit(actor: Actor, task, patch: TaskPatch) -> bool:
    """Whether *actor* may apply *patch* to *task*.

    A USER may never move a task to someone else or to another area, even
    their own task. The narrower USER field surface (observacoes/realizado)
    is enforced by task_service.
    """
    if not can_see(actor, task):
        return False
    role = actor.role
    if isinstance(role, AdminRole):
        return True
    if isinstance(role, LeaderRole):
        return not (patch.touches("area") and patch.area != role.area)
    if isinstance(role, UserRole):
        return not (patch.touches("responsavel_email") or patch.touches("area"))
    raise unknown_role(role)


def can_delete(actor: Actor, task) -> bool:
    role = actor.role
    if isinstance(role, AdminRole):
        return task.tenant_id == actor.tenant_id
    if isinstance(role, (LeaderRole, UserRole)):
        return actor.can_delete and can_see(actor, task)
    raise unknown_role(role)


def can_review(actor: Actor, task) -> bool:
    """Review justifications / lift blocks on *task*."""
    if task.tenant_id != actor.tenant_id:
        return False
    role = actor.role
    if isinstance(role, AdminRole):
        return True
    if isinstance(role, LeaderRole):
        return task.area == role.area
    if isinstance(role, UserRole):
        return False
    raise unknown_role(role)


def can_manage_tasks(actor: Actor) -> bool:
    """Create subtasks, assign to others, duplicate."""
    role = actor.role
    if isinstance(role, (AdminRole, LeaderRole)):
        return True
    if isinstance(role, UserRole):
        return False
    raise unknown_role(role)


def can_assign_to(actor: Actor, user) -> bool:
    """Whether *actor* may make *user* responsible for a task."""
    if user.tenant_id != actor.tenant_id:
        return False
    role = actor.role
    if isinstance(role, AdminRole):
        return True
    if isinstance(role, LeaderRole):
        return user.area == role.area
    if isinstance(role, UserRole):
        return _same_email(user.email, role.email)
    raise unknown_role(role)


def ensure_writable(actor: Actor) -> None:
    """Reject any mutation attempted from an impersonation session."""
    if actor.impersonating:
        logger.warning(
            "Write blocked for impersonation session",
            extra={"tenant_id": actor.tenant_id, "event_type": "read_only_violation"},
        )
        raise ReadOnlySessionError("Sessão de impersonação é somente leitura")
