"""
Tests: task evidence: files attached to open tasks.
"""

import base64
import os
from datetime import date

import pytest
from sqlalchemy import select

from conftest import TODAY
from taskhub.core.exceptions import (
    FileTooLargeError,
    InvalidMimeError,
    NotFoundError,
    ReadOnlySessionError,
    TaskConcludedError,
)
from taskhub.models import db as _db
from taskhub.models.audit import AuditLog
from taskhub.models.task import TaskEvidence
from taskhub.services import task_service
from taskhub.services.evidence_storage import get_storage
from taskhub.services.task_evidence_service import (
    attach_task_evidence,
    list_task_evidences,
    open_task_evidence,
    remove_task_evidence,
)
from taskhub.services.task_patch import TaskPatch

PDF_BYTES = b"%PDF-1.4 guia de recolhimento"
PDF_B64 = base64.b64encode(PDF_BYTES).decode()


@pytest.fixture()
def open_task(org, make_task):
    return make_task(org.tenant, org.ana, prazo=date(2026, 2, 20))


def _attach(actor, task, name="guia.pdf", mime="application/pdf", content=PDF_B64):
    return attach_task_evidence(actor, task.id, name, mime, content)


class TestAttach:
    def test_responsible_user_attaches(self, org, open_task, actor_for):
        evidence = _attach(actor_for(org.ana), open_task)

        assert evidence.task_id == open_task.id
        assert evidence.file_size == len(PDF_BYTES)
        assert evidence.uploaded_by == "ana@acme.com"
        assert evidence.file_path.startswith(f"{org.tenant.id}/task_evidences/{open_task.id}/")
        _, path = open_task_evidence(actor_for(org.leader), open_task.id, evidence.id)
        with open(path, "rb") as fh:
            assert fh.read() == PDF_BYTES

        actions = _db.session.execute(
            select(AuditLog.action).where(AuditLog.entity_id == evidence.id)
        ).scalars().all()
        assert actions == ["task_evidence.attach"]

    def test_several_files_per_task(self, org, open_task, actor_for):
        ana = actor_for(org.ana)
        _attach(ana, open_task, name="a.pdf")
        _attach(actor_for(org.leader), open_task, name="b.pdf")

        names = [e.file_name for e in list_task_evidences(ana, open_task.id)]
        assert sorted(names) == ["a.pdf", "b.pdf"]

    def test_completed_task_refuses_uploads(self, org, open_task, actor_for):
        ana = actor_for(org.ana)
        task_service.update_task(ana, open_task.id, TaskPatch(realizado=date(2026, 2, 14)), today=TODAY)

        with pytest.raises(TaskConcludedError) as exc:
            _attach(ana, open_task)
        assert exc.value.code == "TASK_CONCLUDED"
        assert not os.path.exists(get_storage().resolve(f"{org.tenant.id}/task_evidences/{open_task.id}"))

    def test_file_policy_applies(self, org, open_task, actor_for, app, monkeypatch):
        with pytest.raises(InvalidMimeError):
            _attach(actor_for(org.ana), open_task, name="x.exe", mime="application/x-msdownload")
        monkeypatch.setitem(app.config, "MAX_EVIDENCE_BYTES", 4)
        with pytest.raises(FileTooLargeError):
            _attach(actor_for(org.ana), open_task)
        assert _db.session.execute(select(TaskEvidence)).scalars().all() == []

    def test_invisible_task_is_not_found(self, org, open_task, actor_for):
        with pytest.raises(NotFoundError):
            _attach(actor_for(org.bruno), open_task)
        with pytest.raises(NotFoundError):
            list_task_evidences(actor_for(org.other_leader), open_task.id)

    def test_deleted_task_is_not_found(self, org, open_task, actor_for):
        task_service.delete_task(actor_for(org.admin), open_task.id)
        with pytest.raises(NotFoundError):
            _attach(actor_for(org.ana), open_task)

    def test_impersonation_is_read_only(self, org, open_task, actor_for):
        evidence = _attach(actor_for(org.ana), open_task)
        viewer = actor_for(org.ana, impersonating=True)

        assert [e.id for e in list_task_evidences(viewer, open_task.id)] == [evidence.id]
        with pytest.raises(ReadOnlySessionError):
            _attach(viewer, open_task)
        with pytest.raises(ReadOnlySessionError):
            remove_task_evidence(viewer, open_task.id, evidence.id)


class TestRemove:
    def test_remove_deletes_row_and_file(self, org, open_task, actor_for):
        ana = actor_for(org.ana)
        evidence = _attach(ana, open_task)
        evidence_id = evidence.id
        path = get_storage().resolve(evidence.file_path)

        task = remove_task_evidence(ana, open_task.id, evidence_id)
        assert task.evidences == []
        assert not os.path.exists(path)
        assert _db.session.get(TaskEvidence, evidence_id) is None

    def test_evidence_of_another_task_is_not_found(self, org, open_task, make_task, actor_for):
        other = make_task(org.tenant, org.ana, prazo=date(2026, 2, 25))
        evidence = _attach(actor_for(org.ana), other)
        with pytest.raises(NotFoundError):
            remove_task_evidence(actor_for(org.ana), open_task.id, evidence.id)
        with pytest.raises(NotFoundError):
            open_task_evidence(actor_for(org.ana), open_task.id, evidence.id)
