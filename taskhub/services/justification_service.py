"""
Justification Workflow Service: explanations for late task completion.

State machine per justification:

    (none) ──create──▶ pending ──approve──────────▶ approved
                          │
                          ├──refuse─────────────▶ refused
                          └──refuse_and_block───▶ refused  + task blocked

The task-level block flag is orthogonal: while set, no new justification
can be created for the task. Only an explicit unblock by a LEADER of the
task's area or an ADMIN clears it; the refused justification stays as is.

Design decisions:
    - Pre-checks give precise errors; the schema gives the guarantees. The
      partial unique index on pending rows and the unique evidence-per-
      justification constraint turn a lost race into PENDING_EXISTS /
      MAX_EVIDENCE instead of a duplicate.
    - Review is a conditional UPDATE ... WHERE status = 'pending', so two
      concurrent reviews cannot both succeed; the loser gets ALREADY_REVIEWED.
    - Justifications exist only for top-level tasks.
    - reviewed_by / blocked_by / created_by store the actor's e-mail.
"""

from __future__ import annotations

import logging
from datetime import UTC, date, datetime

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from taskhub.core.actor import Actor
from taskhub.core.exceptions import (
    AlreadyReviewedError,
    BlockedError,
    EvidenceLimitError,
    ForbiddenError,
    NotFoundError,
    PendingExistsError,
    ValidationError,
)
from taskhub.models import db
from taskhub.models.audit import write_audit
from taskhub.models.base import new_uuid
from taskhub.models.justification import (
    JUSTIFICATION_APPROVED,
    JUSTIFICATION_PENDING,
    JUSTIFICATION_REFUSED,
    JustificationEvidence,
    TaskJustification,
)
from taskhub.models.task import Task
from taskhub.services import access
from taskhub.services.evidence_storage import check_mime, decode_payload, get_storage
from taskhub.services.helpers.scoped_queries import get_scoped
from taskhub.services.task_lifecycle import TaskStatus, derive_status
from taskhub.services.task_service import status_filter_clause, tenant_today
from taskhub.utils.helpers import clean_text, parse_competencia

logger = logging.getLogger(__name__)

DESCRIPTION_MAX = 2000
REVIEW_COMMENT_MAX = 2000
MAX_EVIDENCES_PER_JUSTIFICATION = 1

REVIEW_APPROVE = "approve"
REVIEW_REFUSE = "refuse"
REVIEW_REFUSE_AND_BLOCK = "refuse_and_block"
REVIEW_ACTIONS = (REVIEW_APPROVE, REVIEW_REFUSE, REVIEW_REFUSE_AND_BLOCK)

# Composite status shown to the responsible user
COMPOSITE_NONE = "NONE"
COMPOSITE_PENDING = "PENDING"
COMPOSITE_APPROVED = "APPROVED"
COMPOSITE_REFUSED = "REFUSED"
COMPOSITE_BLOCKED = "BLOCKED"


# ── Private helpers ────────────────────────────────────────────────────────────


def _same_email(a: str | None, b: str | None) -> bool:
    return (a or "").strip().lower() == (b or "").strip().lower()


def _find_pending(tenant_id: int, task_id: str) -> TaskJustification | None:
    return db.session.execute(
        select(TaskJustification).where(
            TaskJustification.tenant_id == tenant_id,
            TaskJustification.task_id == task_id,
            TaskJustification.status == JUSTIFICATION_PENDING,
        )
    ).scalar_one_or_none()


def _get_top_level_task(actor: Actor, task_id: str) -> Task:
    task = get_scoped(Task, task_id, tenant_id=actor.tenant_id, label="Tarefa")
    if task.parent_task_id is not None:
        raise NotFoundError(resource="Tarefa", resource_id=task_id, tenant_id=actor.tenant_id)
    return task


def _get_visible_justification(actor: Actor, justification_id: str) -> TaskJustification:
    just = get_scoped(TaskJustification, justification_id, tenant_id=actor.tenant_id, label="Justificativa")
    if just.task is None or just.task.is_deleted or not access.can_see(actor, just.task):
        raise NotFoundError(resource="Justificativa", resource_id=justification_id, tenant_id=actor.tenant_id)
    return just


def _require_reviewer_role(actor: Actor) -> None:
    if not access.can_manage_tasks(actor):
        raise ForbiddenError("Apenas líderes e administradores")


def _latest_by_task(tenant_id: int, task_ids: list[str]) -> dict[str, TaskJustification]:
    if not task_ids:
        return {}
    rows = db.session.execute(
        select(TaskJustification)
        .where(TaskJustification.tenant_id == tenant_id, TaskJustification.task_id.in_(task_ids))
        .order_by(TaskJustification.created_at)
    ).scalars()
    latest: dict[str, TaskJustification] = {}
    for row in rows:
        latest[row.task_id] = row
    return latest


def composite_status(task: Task, latest: TaskJustification | None) -> str:
    """Single view over the block flag and the latest justification."""
    if task.justification_blocked:
        return COMPOSITE_BLOCKED
    if latest is None:
        return COMPOSITE_NONE
    return latest.status.upper()


def _view_row(task: Task, latest: TaskJustification | None, today: date) -> dict:
    return {
        "task": task.to_dict(today),
        "justification_status": composite_status(task, latest),
        "justification": latest.to_dict() if latest else None,
    }


def _review_scope(actor: Actor, stmt):
    _require_reviewer_role(actor)
    if actor.is_leader:
        stmt = stmt.where(Task.area == actor.role.area)
    return stmt


# ── Commands ───────────────────────────────────────────────────────────────────


def create_justification(actor: Actor, task_id: str, description: str, *, today: date | None = None) -> TaskJustification:
    """Open a pending justification for a task completed late.

    Checks, in order: USER role (FORBIDDEN), description (VALIDATION), task
    in tenant and top-level (NOT_FOUND), actor is responsible (FORBIDDEN),
    derived status "Concluído em Atraso" (VALIDATION), not blocked (BLOCKED),
    no pending justification (PENDING_EXISTS).
    """
    access.ensure_writable(actor)
    if not actor.is_user:
        raise ForbiddenError("Apenas o responsável pela tarefa pode justificar")
    text = clean_text(description, "description", DESCRIPTION_MAX, required=True)

    task = _get_top_level_task(actor, task_id)
    if not _same_email(task.responsavel_email, actor.email):
        raise ForbiddenError("Apenas o responsável pela tarefa pode justificar")

    today = today or tenant_today(actor.tenant_id)
    if derive_status(task.prazo, task.realizado, today) != TaskStatus.CONCLUIDO_EM_ATRASO:
        raise ValidationError("Só é possível justificar tarefas concluídas em atraso")
    if task.justification_blocked:
        raise BlockedError("Tarefa bloqueada para novas justificativas")
    if _find_pending(actor.tenant_id, task.id) is not None:
        raise PendingExistsError("Já existe uma justificativa pendente para esta tarefa")

    just = TaskJustification(
        tenant_id=actor.tenant_id,
        task_id=task.id,
        description=text,
        status=JUSTIFICATION_PENDING,
        created_by=actor.email,
    )
    try:
        db.session.add(just)
        db.session.flush()
        write_audit(
            tenant_id=actor.tenant_id,
            entity_type="justification",
            entity_id=just.id,
            action="justification.create",
            actor=actor.email,
            actor_user_id=actor.user_id,
            diff={"task_id": task.id},
        )
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        logger.info(
            "Concurrent justification create rejected by unique index",
            extra={"tenant_id": actor.tenant_id, "task_id": task_id},
        )
        raise PendingExistsError("Já existe uma justificativa pendente para esta tarefa") from exc

    logger.info(
        "Justification created",
        extra={"tenant_id": actor.tenant_id, "task_id": task.id, "justification_id": just.id, "actor": actor.email},
    )
    return just


def attach_evidence(
    actor: Actor,
    justification_id: str,
    file_name: str,
    mime_type: str | None,
    content_base64: str,
) -> JustificationEvidence:
    """Attach the (single) evidence file to a pending justification."""
    access.ensure_writable(actor)
    just = _get_visible_justification(actor, justification_id)
    if just.status != JUSTIFICATION_PENDING:
        raise ValidationError("Evidências só podem ser anexadas a justificativas pendentes")
    if not _same_email(just.task.responsavel_email, actor.email):
        raise ForbiddenError("Apenas o responsável pela tarefa pode anexar evidências")
    if len(just.evidences) >= MAX_EVIDENCES_PER_JUSTIFICATION:
        raise EvidenceLimitError(
            f"Limite de {MAX_EVIDENCES_PER_JUSTIFICATION} evidência por justificativa",
            details={"max": MAX_EVIDENCES_PER_JUSTIFICATION},
        )

    mime = check_mime(mime_type)
    data = decode_payload(content_base64)

    storage = get_storage()
    evidence_id = new_uuid()
    safe_name = (file_name or "").strip() or "arquivo"
    rel_path = storage.relative_path(actor.tenant_id, "justification_evidences", just.id, evidence_id, safe_name)
    storage.save(rel_path, data)

    evidence = JustificationEvidence(
        id=evidence_id,
        tenant_id=actor.tenant_id,
        justification_id=just.id,
        file_name=safe_name[:255],
        file_path=rel_path,
        mime_type=mime,
        file_size=len(data),
        uploaded_by=actor.email,
    )
    try:
        db.session.add(evidence)
        db.session.flush()
        write_audit(
            tenant_id=actor.tenant_id,
            entity_type="evidence",
            entity_id=evidence.id,
            action="evidence.attach",
            actor=actor.email,
            actor_user_id=actor.user_id,
            diff={"justification_id": just.id, "mime_type": mime, "file_size": len(data)},
        )
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        storage.delete(rel_path)
        raise EvidenceLimitError(
            f"Limite de {MAX_EVIDENCES_PER_JUSTIFICATION} evidência por justificativa",
            details={"max": MAX_EVIDENCES_PER_JUSTIFICATION},
        ) from exc

    logger.info(
        "Evidence attached",
        extra={"tenant_id": actor.tenant_id, "justification_id": just.id, "actor": actor.email},
    )
    return evidence


def remove_evidence(actor: Actor, justification_id: str, evidence_id: str) -> None:
    access.ensure_writable(actor)
    just = _get_visible_justification(actor, justification_id)
    if just.status != JUSTIFICATION_PENDING:
        raise ValidationError("Evidências só podem ser removidas de justificativas pendentes")
    if not _same_email(just.task.responsavel_email, actor.email):
        raise ForbiddenError("Apenas o responsável pela tarefa pode remover evidências")
    evidence = get_scoped(
        JustificationEvidence, evidence_id,
        tenant_id=actor.tenant_id, justification_id=just.id, label="Evidência",
    )

    rel_path = evidence.file_path
    db.session.delete(evidence)
    write_audit(
        tenant_id=actor.tenant_id,
        entity_type="evidence",
        entity_id=evidence_id,
        action="evidence.remove",
        actor=actor.email,
        actor_user_id=actor.user_id,
        diff={"justification_id": just.id},
    )
    db.session.commit()
    get_storage().delete(rel_path)


def open_evidence(actor: Actor, justification_id: str, evidence_id: str) -> tuple[JustificationEvidence, str]:
    """Return the evidence row and the absolute path of its file."""
    just = _get_visible_justification(actor, justification_id)
    evidence = get_scoped(
        JustificationEvidence, evidence_id,
        tenant_id=actor.tenant_id, justification_id=just.id, label="Evidência",
    )
    return evidence, get_storage().open_path(evidence.file_path)


def review_justification(
    actor: Actor,
    justification_id: str,
    action: str,
    comment: str | None = None,
) -> TaskJustification:
    """Approve or refuse a pending justification.

    Checks, in order: action (VALIDATION), LEADER/ADMIN (FORBIDDEN),
    justification in tenant with a live task (NOT_FOUND), still pending (ALREADY_REVIEWED),
    LEADER of the task's area (FORBIDDEN), comment length (VALIDATION).
    The comment is stored only on refusal paths.
    """
    access.ensure_writable(actor)
    if action not in REVIEW_ACTIONS:
        raise ValidationError(
            f"Ação inválida: {action}",
            details={"action": f"one_of:{','.join(REVIEW_ACTIONS)}"},
        )
    _require_reviewer_role(actor)
    just = get_scoped(TaskJustification, justification_id, tenant_id=actor.tenant_id, label="Justificativa")
    task = just.task
    if task is None or task.is_deleted:
        raise NotFoundError(resource="Justificativa", resource_id=justification_id, tenant_id=actor.tenant_id)
    if just.status != JUSTIFICATION_PENDING:
        raise AlreadyReviewedError("Justificativa já revisada")
    if not access.can_review(actor, task):
        raise ForbiddenError("Sem permissão para revisar justificativas desta área")

    if action == REVIEW_APPROVE:
        review_comment = None
        new_status = JUSTIFICATION_APPROVED
    else:
        review_comment = clean_text(comment, "comment", REVIEW_COMMENT_MAX)
        new_status = JUSTIFICATION_REFUSED

    now = datetime.now(UTC)
    result = db.session.execute(
        update(TaskJustification)
        .where(
            TaskJustification.id == just.id,
            TaskJustification.tenant_id == actor.tenant_id,
            TaskJustification.status == JUSTIFICATION_PENDING,
        )
        .values(status=new_status, reviewed_at=now, reviewed_by=actor.email, review_comment=review_comment)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.session.rollback()
        raise AlreadyReviewedError("Justificativa já revisada")

    if action == REVIEW_REFUSE_AND_BLOCK:
        task.justification_blocked = True
        task.justification_blocked_at = now
        task.justification_blocked_by = actor.email

    write_audit(
        tenant_id=actor.tenant_id,
        entity_type="justification",
        entity_id=just.id,
        action=f"justification.{action}",
        actor=actor.email,
        actor_user_id=actor.user_id,
        diff={"status": {"old": JUSTIFICATION_PENDING, "new": new_status}, "task_id": task.id},
    )
    db.session.commit()

    logger.info(
        "Justification reviewed",
        extra={
            "tenant_id": actor.tenant_id,
            "justification_id": just.id,
            "task_id": task.id,
            "actor": actor.email,
            "event_type": f"justification.{action}",
        },
    )
    db.session.refresh(just)
    return just


def unblock_task(actor: Actor, task_id: str) -> Task:
    """Lift the justification block on a task."""
    access.ensure_writable(actor)
    _require_reviewer_role(actor)
    task = _get_top_level_task(actor, task_id)
    if not access.can_review(actor, task):
        raise ForbiddenError("Sem permissão para desbloquear tarefas desta área")

    previously = task.justification_blocked_by
    task.justification_blocked = False
    task.justification_blocked_at = None
    task.justification_blocked_by = None

    write_audit(
        tenant_id=actor.tenant_id,
        entity_type="task",
        entity_id=task.id,
        action="task.unblock",
        actor=actor.email,
        actor_user_id=actor.user_id,
        diff={"blocked_by": previously},
    )
    db.session.commit()
    logger.info(
        "Task unblocked",
        extra={"tenant_id": actor.tenant_id, "task_id": task.id, "actor": actor.email},
    )
    return task


# ── Queries ────────────────────────────────────────────────────────────────────


def get_justification(actor: Actor, justification_id: str) -> TaskJustification:
    return _get_visible_justification(actor, justification_id)


def list_mine(actor: Actor, competencia_ym: str | None = None, *, today: date | None = None) -> list[dict]:
    """The USER's own late-completed top-level tasks with justification state."""
    if not actor.is_user:
        raise ForbiddenError("Disponível apenas para usuários")
    today = today or tenant_today(actor.tenant_id)

    stmt = select(Task).where(
        Task.tenant_id == actor.tenant_id,
        Task.deleted_at.is_(None),
        Task.parent_task_id.is_(None),
        Task.responsavel_email == actor.email,
        status_filter_clause(TaskStatus.CONCLUIDO_EM_ATRASO.value, today),
    )
    if competencia_ym:
        stmt = stmt.where(Task.competencia_ym == parse_competencia(competencia_ym))
    tasks = list(db.session.execute(stmt.order_by(Task.realizado.desc())).scalars())

    latest = _latest_by_task(actor.tenant_id, [t.id for t in tasks])
    return [_view_row(t, latest.get(t.id), today) for t in tasks]


def _list_by_status(actor: Actor, status: str, competencia_ym: str | None, order_by) -> list[dict]:
    today = tenant_today(actor.tenant_id)
    stmt = (
        select(TaskJustification, Task)
        .join(Task, Task.id == TaskJustification.task_id)
        .where(
            TaskJustification.tenant_id == actor.tenant_id,
            TaskJustification.status == status,
            Task.tenant_id == actor.tenant_id,
            Task.deleted_at.is_(None),
        )
    )
    stmt = _review_scope(actor, stmt)
    if competencia_ym:
        stmt = stmt.where(Task.competencia_ym == parse_competencia(competencia_ym))

    rows = db.session.execute(stmt.order_by(order_by)).all()
    return [
        {**just.to_dict(), "task": task.to_dict(today), "justification_status": composite_status(task, just)}
        for just, task in rows
    ]


def list_pending(actor: Actor, competencia_ym: str | None = None) -> list[dict]:
    """Pending justifications awaiting review (LEADER: own area; ADMIN: all)."""
    return _list_by_status(actor, JUSTIFICATION_PENDING, competencia_ym, TaskJustification.created_at)


def list_approved(actor: Actor, competencia_ym: str | None = None) -> list[dict]:
    return _list_by_status(actor, JUSTIFICATION_APPROVED, competencia_ym, TaskJustification.reviewed_at.desc())


def list_blocked(actor: Actor) -> list[dict]:
    """Tasks currently blocked from new justifications."""
    today = tenant_today(actor.tenant_id)
    stmt = select(Task).where(
        Task.tenant_id == actor.tenant_id,
        Task.deleted_at.is_(None),
        Task.justification_blocked.is_(True),
    )
    stmt = _review_scope(actor, stmt)
    tasks = list(db.session.execute(stmt.order_by(Task.justification_blocked_at.desc())).scalars())
    latest = _latest_by_task(actor.tenant_id, [t.id for t in tasks])
    return [_view_row(t, latest.get(t.id), today) for t in tasks]
