"""
Task Service: creation, update, deletion and listing of tasks.

Business rules enforced here (never in blueprints):
    - Status is derived from (prazo, realizado, tenant-local today) on every
      write and on every read; callers cannot set it.
    - ADMIN/LEADER assign tasks to existing users (USER_NOT_FOUND otherwise);
      a LEADER only inside their own area.
    - A USER creates tasks only for themself and only with a recurrence the
      area's rule allows (NO_RULE / RECORRENCIA_NOT_ALLOWED).
    - A USER may change only observacoes and realizado on their own task.
    - Subtasks are one level deep, created by ADMIN/LEADER, and inherit
      competencia, recorrencia, tipo, area and prazo from the parent.
    - A top-level task with open subtasks cannot be completed.
    - Deletion is soft and cascades to subtasks.

Every mutating entry point calls ``ensure_writable`` first, runs as a single
read-validate-write transaction and commits once. Any failed precondition
raises before a row is touched.
"""

from __future__ import annotations

import logging
from datetime import date

from flask import current_app
from sqlalchemy import and_, or_, select

from taskhub.core.actor import Actor
from taskhub.core.exceptions import (
    ForbiddenError,
    NoRuleError,
    NotFoundError,
    RecurrenceNotAllowedError,
    SubtasksPendingError,
    UserNotFoundError,
    ValidationError,
)
from taskhub.models import db
from taskhub.models.audit import write_audit
from taskhub.models.auth import Tenant, User
from taskhub.models.task import Task
from taskhub.services import access
from taskhub.services.helpers.scoped_queries import get_scoped
from taskhub.services.rule_lookup import RuleLookup, default_rule_lookup
from taskhub.services.task_lifecycle import TaskStatus, derive_status, reference_today
from taskhub.services.task_patch import (
    ATIVIDADE_MAX,
    OBSERVACOES_MAX,
    RECORRENCIA_MAX,
    TIPO_MAX,
    USER_EDITABLE_FIELDS,
    TaskPatch,
)
from taskhub.utils.helpers import clean_text, parse_competencia, parse_task_date

logger = logging.getLogger(__name__)

# Fields a subtask takes from its parent and may not change on its own
INHERITED_FIELDS = ("competencia_ym", "recorrencia", "tipo", "area", "prazo")

_CREATE_ALIASES = {
    "competenciaYm": "competencia_ym",
    "responsavelEmail": "responsavel_email",
    "parentTaskId": "parent_task_id",
}
_CREATE_FIELDS = frozenset({
    "competencia_ym", "recorrencia", "tipo", "atividade", "responsavel_email",
    "prazo", "realizado", "observacoes", "parent_task_id",
})


# ── Private helpers ────────────────────────────────────────────────────────────


def tenant_today(tenant_id: int) -> date:
    """Calendar day used as "today" for *tenant_id*.

    The tenant's ``settings.timezone`` wins; otherwise DEFAULT_TIMEZONE.
    """
    tenant = db.session.get(Tenant, tenant_id)
    tz_name = (tenant.timezone if tenant else None) or current_app.config.get("DEFAULT_TIMEZONE")
    return reference_today(tz_name)


def _normalise_create_payload(data: dict) -> dict:
    if not isinstance(data, dict):
        raise ValidationError("Corpo da requisição inválido")
    out = {}
    unknown = []
    for key, value in data.items():
        name = _CREATE_ALIASES.get(key, key)
        if name not in _CREATE_FIELDS:
            unknown.append(key)
            continue
        out[name] = value
    if unknown:
        raise ValidationError(
            f"Campos não permitidos: {', '.join(sorted(unknown))}",
            details={k: "not_allowed" for k in unknown},
        )
    return out


def _find_user(tenant_id: int, email: str) -> User | None:
    return db.session.execute(
        select(User).where(User.tenant_id == tenant_id, User.email == (email or "").strip().lower())
    ).scalar_one_or_none()


def _require_assignee(actor: Actor, email: str | None) -> User:
    if not email:
        raise ValidationError("responsavelEmail é obrigatório", details={"responsavel_email": "required"})
    user = _find_user(actor.tenant_id, email)
    if user is None:
        raise UserNotFoundError(f"Usuário {email} não encontrado")
    if not access.can_assign_to(actor, user):
        raise ForbiddenError("Sem permissão para atribuir tarefa a este usuário")
    return user


def get_visible_task(actor: Actor, task_id: str) -> Task:
    """Load a task the actor may see; anything else is NOT_FOUND."""
    task = get_scoped(Task, task_id, tenant_id=actor.tenant_id, label="Tarefa")
    if not access.can_see(actor, task):
        raise NotFoundError(resource="Tarefa", resource_id=task_id, tenant_id=actor.tenant_id)
    return task


def _active_subtasks(task: Task) -> list[Task]:
    return list(
        db.session.execute(
            select(Task).where(
                Task.tenant_id == task.tenant_id,
                Task.parent_task_id == task.id,
                Task.deleted_at.is_(None),
            )
        ).scalars()
    )


def status_filter_clause(status: str, today: date):
    """Translate a derived status into a predicate over the date columns.

    Filtering on the persisted ``status`` column would miss tasks that
    became overdue since their last write.
    """
    if status == TaskStatus.EM_ANDAMENTO.value:
        return and_(Task.realizado.is_(None), or_(Task.prazo.is_(None), Task.prazo >= today))
    if status == TaskStatus.EM_ATRASO.value:
        return and_(Task.realizado.is_(None), Task.prazo.is_not(None), Task.prazo < today)
    if status == TaskStatus.CONCLUIDO.value:
        return and_(Task.realizado.is_not(None), or_(Task.prazo.is_(None), Task.realizado <= Task.prazo))
    if status == TaskStatus.CONCLUIDO_EM_ATRASO.value:
        return and_(Task.realizado.is_not(None), Task.prazo.is_not(None), Task.realizado > Task.prazo)
    raise ValidationError(f"Status inválido: {status}", details={"status": "invalid"})


def _visibility_clause(actor: Actor):
    if actor.is_admin:
        return Task.parent_task_id.is_(None)
    if actor.is_leader:
        return and_(Task.area == actor.role.area, Task.parent_task_id.is_(None))
    if actor.is_user:
        return Task.responsavel_email == actor.role.email
    raise TypeError(f"Unhandled role variant: {actor.role!r}")


def _value(v):
    return v.isoformat() if isinstance(v, date) else v


# ── Public API ─────────────────────────────────────────────────────────────────


def create_task(
    actor: Actor,
    data: dict,
    *,
    rule_lookup: RuleLookup | None = None,
    today: date | None = None,
) -> Task:
    """Create a top-level task or a subtask.

    Args:
        actor:        Authenticated principal.
        data:         Request body. Accepted keys: competencia_ym, recorrencia,
                      tipo, atividade, responsavel_email, prazo, realizado,
                      observacoes, parent_task_id (camelCase aliases allowed).
        rule_lookup:  Recurrence rule source for USER self-creation.
        today:        Override of the tenant-local day (tests).

    Raises:
        ValidationError, ForbiddenError, NotFoundError, UserNotFoundError,
        NoRuleError, RecurrenceNotAllowedError.
    """
    access.ensure_writable(actor)
    payload = _normalise_create_payload(data)
    rule_lookup = rule_lookup or default_rule_lookup

    atividade = clean_text(payload.get("atividade"), "atividade", ATIVIDADE_MAX, required=True)
    observacoes = clean_text(payload.get("observacoes"), "observacoes", OBSERVACOES_MAX)
    realizado = parse_task_date(payload.get("realizado"), "realizado")
    parent_id = payload.get("parent_task_id")

    if parent_id:
        if not access.can_manage_tasks(actor):
            raise ForbiddenError("Apenas administradores e líderes criam subtarefas")
        parent = get_visible_task(actor, parent_id)
        if parent.is_subtask:
            raise ValidationError("Não é permitido criar subtarefa de uma subtarefa")
        assignee = _require_assignee(actor, payload.get("responsavel_email"))
        fields = {name: getattr(parent, name) for name in INHERITED_FIELDS}
        fields["parent_task_id"] = parent.id
    else:
        competencia_ym = parse_competencia(payload.get("competencia_ym"))
        recorrencia = clean_text(payload.get("recorrencia"), "recorrencia", RECORRENCIA_MAX, required=True)
        tipo = clean_text(payload.get("tipo"), "tipo", TIPO_MAX, required=True)
        prazo = parse_task_date(payload.get("prazo"), "prazo")

        if actor.is_user:
            requested = (payload.get("responsavel_email") or "").strip().lower()
            if requested and requested != actor.email:
                raise ForbiddenError("Usuário só pode criar tarefas para si mesmo")
            allowed = rule_lookup.get_allowed_recurrences(actor.tenant_id, actor.role.area)
            if not allowed:
                raise NoRuleError(f"Nenhuma regra de recorrência configurada para a área {actor.role.area}")
            if recorrencia not in allowed:
                raise RecurrenceNotAllowedError(
                    f"Recorrência '{recorrencia}' não permitida para a área {actor.role.area}",
                    details={"allowed": sorted(allowed)},
                )
            assignee = _find_user(actor.tenant_id, actor.email)
            if assignee is None:
                raise UserNotFoundError(f"Usuário {actor.email} não encontrado")
        else:
            assignee = _require_assignee(actor, payload.get("responsavel_email"))

        fields = {
            "competencia_ym": competencia_ym,
            "recorrencia": recorrencia,
            "tipo": tipo,
            "area": assignee.area,
            "prazo": prazo,
            "parent_task_id": None,
        }

    today = today or tenant_today(actor.tenant_id)
    task = Task(
        tenant_id=actor.tenant_id,
        atividade=atividade,
        observacoes=observacoes,
        responsavel_email=assignee.email,
        responsavel_nome=assignee.name,
        realizado=realizado,
        realizado_por=actor.email if realizado else None,
        created_by=actor.email,
        updated_by=actor.email,
        **fields,
    )
    task.status = derive_status(task.prazo, task.realizado, today).value
    db.session.add(task)
    db.session.flush()

    write_audit(
        tenant_id=actor.tenant_id,
        entity_type="task",
        entity_id=task.id,
        action="task.create",
        actor=actor.email,
        actor_user_id=actor.user_id,
        diff={"atividade": atividade, "responsavel_email": task.responsavel_email, "status": task.status},
    )
    db.session.commit()

    logger.info(
        "Task created",
        extra={"tenant_id": actor.tenant_id, "task_id": task.id, "actor": actor.email},
    )
    return task


def update_task(actor: Actor, task_id: str, patch: TaskPatch, *, today: date | None = None) -> Task:
    """Apply *patch* to a task and recompute its status.

    Raises:
        NotFoundError:        task not in tenant or not visible to actor.
        ForbiddenError:       can_edit denies the patch, or a USER touches a
                              field outside observacoes/realizado.
        ValidationError:      subtask inherited field changed.
        UserNotFoundError:    new responsible does not exist.
        SubtasksPendingError: completing a task with open subtasks.
    """
    access.ensure_writable(actor)
    task = get_visible_task(actor, task_id)

    if not access.can_edit(actor, task, patch):
        raise ForbiddenError("Sem permissão para editar esta tarefa")
    touched = patch.touched()
    if actor.is_user and touched - USER_EDITABLE_FIELDS:
        raise ForbiddenError(
            "Usuário só pode alterar observações e data de realização",
            details={f: "not_allowed" for f in sorted(touched - USER_EDITABLE_FIELDS)},
        )
    if task.is_subtask:
        changed = [f for f in INHERITED_FIELDS if patch.touches(f) and getattr(patch, f) != getattr(task, f)]
        if changed:
            raise ValidationError(
                "Subtarefa herda competência, recorrência, tipo, área e prazo da tarefa principal",
                details={f: "inherited" for f in changed},
            )

    # Every check that can raise runs before the first write to the row.
    assignee = None
    if patch.touches("responsavel_email") and patch.responsavel_email != task.responsavel_email:
        assignee = _require_assignee(actor, patch.responsavel_email)

    completing = patch.touches("realizado") and patch.realizado is not None and task.realizado is None
    if completing and not task.is_subtask:
        open_subtasks = [s for s in _active_subtasks(task) if s.realizado is None]
        if open_subtasks:
            raise SubtasksPendingError(
                f"Existem {len(open_subtasks)} subtarefa(s) em aberto",
                details={"open_subtasks": [s.id for s in open_subtasks]},
            )

    diff: dict = {}

    def _set(name, value):
        old = getattr(task, name)
        if old != value:
            diff[name] = {"old": _value(old), "new": _value(value)}
            setattr(task, name, value)

    if assignee is not None:
        _set("responsavel_email", assignee.email)
        _set("responsavel_nome", assignee.name)
        if not task.is_subtask and not patch.touches("area"):
            _set("area", assignee.area)

    for name in ("competencia_ym", "recorrencia", "tipo", "atividade", "area", "observacoes"):
        if patch.touches(name):
            _set(name, getattr(patch, name))

    if patch.touches("prazo") and patch.prazo != task.prazo:
        _set("prazo", patch.prazo)
        task.prazo_modified_by = actor.email

    if patch.touches("realizado") and patch.realizado != task.realizado:
        _set("realizado", patch.realizado)
        task.realizado_por = actor.email if patch.realizado is not None else None

    today = today or tenant_today(actor.tenant_id)
    _set("status", derive_status(task.prazo, task.realizado, today).value)
    task.updated_by = actor.email

    # Propagate inherited fields to subtasks
    if not task.is_subtask and any(f in diff for f in INHERITED_FIELDS):
        for sub in _active_subtasks(task):
            for name in INHERITED_FIELDS:
                setattr(sub, name, getattr(task, name))
            sub.status = derive_status(sub.prazo, sub.realizado, today).value
            sub.updated_by = actor.email

    if diff:
        write_audit(
            tenant_id=actor.tenant_id,
            entity_type="task",
            entity_id=task.id,
            action="task.update",
            actor=actor.email,
            actor_user_id=actor.user_id,
            diff=diff,
        )
    db.session.commit()

    logger.info(
        "Task updated",
        extra={"tenant_id": actor.tenant_id, "task_id": task.id, "actor": actor.email},
    )
    return task


def delete_task(actor: Actor, task_id: str) -> None:
    """Soft-delete a task and its subtasks."""
    access.ensure_writable(actor)
    task = get_visible_task(actor, task_id)
    if not access.can_delete(actor, task):
        raise ForbiddenError("Sem permissão para excluir esta tarefa")

    subtasks = _active_subtasks(task) if not task.is_subtask else []
    task.soft_delete(by=actor.email)
    for sub in subtasks:
        sub.soft_delete(by=actor.email)

    write_audit(
        tenant_id=actor.tenant_id,
        entity_type="task",
        entity_id=task.id,
        action="task.delete",
        actor=actor.email,
        actor_user_id=actor.user_id,
        diff={"subtasks": [s.id for s in subtasks]},
    )
    db.session.commit()
    logger.info(
        "Task deleted",
        extra={"tenant_id": actor.tenant_id, "task_id": task.id, "actor": actor.email},
    )


def duplicate_task(actor: Actor, task_id: str, *, today: date | None = None) -> Task:
    """Copy a task without its completion data (ADMIN/LEADER only)."""
    access.ensure_writable(actor)
    source = get_visible_task(actor, task_id)
    if not access.can_manage_tasks(actor):
        raise ForbiddenError("Apenas administradores e líderes duplicam tarefas")

    today = today or tenant_today(actor.tenant_id)
    copy = Task(
        tenant_id=source.tenant_id,
        competencia_ym=source.competencia_ym,
        recorrencia=source.recorrencia,
        tipo=source.tipo,
        atividade=source.atividade,
        responsavel_email=source.responsavel_email,
        responsavel_nome=source.responsavel_nome,
        area=source.area,
        prazo=source.prazo,
        realizado=None,
        observacoes=source.observacoes,
        parent_task_id=source.parent_task_id,
        created_by=actor.email,
        updated_by=actor.email,
    )
    copy.status = derive_status(copy.prazo, None, today).value
    db.session.add(copy)
    db.session.flush()

    write_audit(
        tenant_id=actor.tenant_id,
        entity_type="task",
        entity_id=copy.id,
        action="task.duplicate",
        actor=actor.email,
        actor_user_id=actor.user_id,
        diff={"source_task_id": source.id},
    )
    db.session.commit()
    return copy


def get_task(actor: Actor, task_id: str) -> Task:
    return get_visible_task(actor, task_id)


def list_subtasks(actor: Actor, task_id: str) -> list[Task]:
    """Subtasks of a visible task (visibility of the parent covers them)."""
    parent = get_visible_task(actor, task_id)
    return sorted(_active_subtasks(parent), key=lambda t: (t.created_at is None, t.created_at))


def list_tasks(actor: Actor, filters: dict | None = None, *, today: date | None = None) -> list[dict]:
    """List tasks visible to *actor*, serialised with live status.

    Filters (all optional): area, responsavel, status, competencia_ym, search.
    ADMIN and LEADER see top-level tasks; a USER sees every task they are
    responsible for, subtasks included.
    """
    filters = filters or {}
    today = today or tenant_today(actor.tenant_id)

    stmt = select(Task).where(
        Task.tenant_id == actor.tenant_id,
        Task.deleted_at.is_(None),
        _visibility_clause(actor),
    )
    if filters.get("area"):
        stmt = stmt.where(Task.area == filters["area"])
    if filters.get("responsavel"):
        stmt = stmt.where(Task.responsavel_email == filters["responsavel"].strip().lower())
    if filters.get("competencia_ym"):
        stmt = stmt.where(Task.competencia_ym == parse_competencia(filters["competencia_ym"]))
    if filters.get("status"):
        stmt = stmt.where(status_filter_clause(filters["status"], today))
    if filters.get("search"):
        term = f"%{filters['search'].strip()}%"
        stmt = stmt.where(or_(
            Task.atividade.ilike(term),
            Task.observacoes.ilike(term),
            Task.responsavel_nome.ilike(term),
            Task.responsavel_email.ilike(term),
        ))

    stmt = stmt.order_by(Task.prazo.is_(None), Task.prazo, Task.created_at)
    return [t.to_dict(today) for t in db.session.execute(stmt).scalars()]


def refresh_persisted_statuses(tenant_id: int | None = None) -> int:
    """Re-derive the stored ``status`` of open tasks whose day has passed.

    Reads always compute status live; this keeps the column honest for
    reporting queries that read it directly. Returns the number of rows changed.
    """
    stmt = select(Task).where(Task.deleted_at.is_(None), Task.realizado.is_(None))
    if tenant_id is not None:
        stmt = stmt.where(Task.tenant_id == tenant_id)

    changed = 0
    todays: dict[int, date] = {}
    for task in db.session.execute(stmt).scalars():
        if task.tenant_id not in todays:
            todays[task.tenant_id] = tenant_today(task.tenant_id)
        status = derive_status(task.prazo, task.realizado, todays[task.tenant_id]).value
        if task.status != status:
            task.status = status
            changed += 1
    db.session.commit()
    logger.info("Refreshed persisted task statuses", extra={"tenant_id": tenant_id, "changed": changed})
    return changed
