"""
Task Evidence Service: working files attached to an open task.

Distinct from justification evidence: any number of files per task, and
uploads stop once the task has a completion date (TASK_CONCLUDED). Removal
stays allowed so a wrong file can still be taken down afterwards.

Visibility follows the task: whoever can see the task can list and download
its files, and (outside impersonation) upload or remove them.
"""

from __future__ import annotations

import logging

from taskhub.core.actor import Actor
from taskhub.core.exceptions import TaskConcludedError
from taskhub.models import db
from taskhub.models.audit import write_audit
from taskhub.models.base import new_uuid
from taskhub.models.task import Task, TaskEvidence
from taskhub.services import access
from taskhub.services.evidence_storage import check_mime, decode_payload, get_storage
from taskhub.services.helpers.scoped_queries import get_scoped
from taskhub.services.task_service import get_visible_task

logger = logging.getLogger(__name__)

STORAGE_FOLDER = "task_evidences"


def _get_evidence(actor: Actor, task: Task, evidence_id: str) -> TaskEvidence:
    return get_scoped(
        TaskEvidence, evidence_id,
        tenant_id=actor.tenant_id, task_id=task.id, label="Evidência",
    )


def list_task_evidences(actor: Actor, task_id: str) -> list[TaskEvidence]:
    """Newest first."""
    return list(get_visible_task(actor, task_id).evidences)


def attach_task_evidence(
    actor: Actor,
    task_id: str,
    file_name: str,
    mime_type: str | None,
    content_base64: str,
) -> TaskEvidence:
    """Store a file for an open task.

    Raises:
        ReadOnlySessionError: impersonation session.
        NotFoundError:        task not in tenant or not visible.
        TaskConcludedError:   task already has ``realizado``.
        InvalidMimeError / InvalidFileError / FileTooLargeError: file policy.
    """
    access.ensure_writable(actor)
    task = get_visible_task(actor, task_id)
    if task.realizado is not None:
        raise TaskConcludedError("Não é possível anexar evidências em atividade já concluída")

    mime = check_mime(mime_type)
    data = decode_payload(content_base64)
    name = (file_name or "").strip() or "arquivo"

    storage = get_storage()
    evidence_id = new_uuid()
    rel_path = storage.relative_path(actor.tenant_id, STORAGE_FOLDER, task.id, evidence_id, name)
    storage.save(rel_path, data)

    evidence = TaskEvidence(
        id=evidence_id,
        tenant_id=actor.tenant_id,
        task_id=task.id,
        file_name=name[:255],
        file_path=rel_path,
        mime_type=mime,
        file_size=len(data),
        uploaded_by=actor.email,
    )
    try:
        db.session.add(evidence)
        write_audit(
            tenant_id=actor.tenant_id,
            entity_type="task_evidence",
            entity_id=evidence.id,
            action="task_evidence.attach",
            actor=actor.email,
            actor_user_id=actor.user_id,
            diff={"task_id": task.id, "mime_type": mime, "file_size": len(data)},
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        storage.delete(rel_path)
        raise

    logger.info(
        "Task evidence attached",
        extra={"tenant_id": actor.tenant_id, "task_id": task.id, "actor": actor.email},
    )
    return evidence


def open_task_evidence(actor: Actor, task_id: str, evidence_id: str) -> tuple[TaskEvidence, str]:
    """Return the evidence row and the absolute path of its file."""
    task = get_visible_task(actor, task_id)
    evidence = _get_evidence(actor, task, evidence_id)
    return evidence, get_storage().open_path(evidence.file_path)


def remove_task_evidence(actor: Actor, task_id: str, evidence_id: str) -> Task:
    access.ensure_writable(actor)
    task = get_visible_task(actor, task_id)
    evidence = _get_evidence(actor, task, evidence_id)

    rel_path = evidence.file_path
    task.evidences.remove(evidence)
    write_audit(
        tenant_id=actor.tenant_id,
        entity_type="task_evidence",
        entity_id=evidence_id,
        action="task_evidence.remove",
        actor=actor.email,
        actor_user_id=actor.user_id,
        diff={"task_id": task.id, "file_name": evidence.file_name},
    )
    db.session.commit()
    get_storage().delete(rel_path)
    logger.info(
        "Task evidence removed",
        extra={"tenant_id": actor.tenant_id, "task_id": task.id, "actor": actor.email},
    )
    return task
