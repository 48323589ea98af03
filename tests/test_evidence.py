"""
Tests: justification evidence: file policy, storage and the one-file limit.
"""

import base64
import os
from datetime import date

import pytest
from sqlalchemy.exc import IntegrityError

from conftest import TODAY
from taskhub.core.exceptions import (
    EvidenceLimitError,
    FileNotFoundOnDiskError,
    FileTooLargeError,
    ForbiddenError,
    InvalidFileError,
    InvalidMimeError,
    InvalidPathError,
    NotFoundError,
    ValidationError,
)
from taskhub.models import db as _db
from taskhub.models.justification import JustificationEvidence
from taskhub.services import justification_service
from taskhub.services.evidence_storage import (
    LocalEvidenceStorage,
    check_mime,
    decode_payload,
    get_storage,
    sanitize_file_name,
)

PNG_BYTES = b"\x89PNG\r\n\x1a\nfake-image"
PNG_B64 = base64.b64encode(PNG_BYTES).decode()


@pytest.fixture()
def pending(org, make_task, actor_for):
    task = make_task(org.tenant, org.ana, prazo=date(2026, 2, 10), realizado=date(2026, 2, 12))
    return justification_service.create_justification(actor_for(org.ana), task.id, "motivo", today=TODAY)


def _attach(actor, just, *, name="nota.png", mime="image/png", content=PNG_B64):
    return justification_service.attach_evidence(actor, just.id, name, mime, content)


# ── Attach / remove ──────────────────────────────────────────────────────────


class TestAttach:
    def test_attach_stores_file_and_row(self, org, pending, actor_for):
        evidence = _attach(actor_for(org.ana), pending)

        assert evidence.file_size == len(PNG_BYTES)
        assert evidence.mime_type == "image/png"
        assert evidence.uploaded_by == "ana@acme.com"
        assert evidence.file_path.startswith(f"{org.tenant.id}/justification_evidences/{pending.id}/")
        with open(get_storage().resolve(evidence.file_path), "rb") as fh:
            assert fh.read() == PNG_BYTES
        assert "file_path" not in evidence.to_dict()

    def test_path_components_are_sanitised(self, org, pending, actor_for):
        evidence = _attach(actor_for(org.ana), pending, name="../../relatório final.png")
        assert ".." not in evidence.file_path
        assert evidence.file_path.endswith("_relatório_final.png")

    def test_one_evidence_per_justification(self, org, pending, actor_for):
        _attach(actor_for(org.ana), pending)
        with pytest.raises(EvidenceLimitError) as exc:
            _attach(actor_for(org.ana), pending, name="outra.png")
        assert exc.value.code == "MAX_EVIDENCE"

    def test_racing_attach_cleans_up_orphan_file(self, org, pending, actor_for, monkeypatch):
        """With the pre-check bypassed, the unique constraint still holds."""
        monkeypatch.setattr(justification_service, "MAX_EVIDENCES_PER_JUSTIFICATION", 5)
        _attach(actor_for(org.ana), pending)
        with pytest.raises(EvidenceLimitError):
            _attach(actor_for(org.ana), pending, name="outra.png")

        folder = get_storage().resolve(f"{org.tenant.id}/justification_evidences/{pending.id}")
        assert len(os.listdir(folder)) == 1

    def test_remove_then_attach_again(self, org, pending, actor_for):
        ana = actor_for(org.ana)
        first = _attach(ana, pending)
        first_id = first.id
        path = get_storage().resolve(first.file_path)

        justification_service.remove_evidence(ana, pending.id, first_id)
        assert not os.path.exists(path)
        assert _db.session.get(JustificationEvidence, first_id) is None

        second = _attach(ana, pending, name="nova.png")
        assert second.id != first_id

    def test_only_pending_justifications_accept_files(self, org, pending, actor_for):
        justification_service.review_justification(actor_for(org.leader), pending.id, "approve")
        with pytest.raises(ValidationError):
            _attach(actor_for(org.ana), pending)

    def test_leader_sees_but_cannot_attach(self, org, pending, actor_for):
        with pytest.raises(ForbiddenError):
            _attach(actor_for(org.leader), pending)

    def test_other_user_gets_not_found(self, org, pending, actor_for):
        with pytest.raises(NotFoundError):
            _attach(actor_for(org.bruno), pending)

    def test_rejected_mime_writes_nothing(self, org, pending, actor_for):
        with pytest.raises(InvalidMimeError):
            _attach(actor_for(org.ana), pending, name="x.exe", mime="application/x-msdownload")
        folder = get_storage().resolve(f"{org.tenant.id}/justification_evidences/{pending.id}")
        assert not os.path.exists(folder)

    def test_open_evidence_missing_on_disk(self, org, pending, actor_for):
        evidence = _attach(actor_for(org.ana), pending)
        os.remove(get_storage().resolve(evidence.file_path))
        with pytest.raises(FileNotFoundOnDiskError):
            justification_service.open_evidence(actor_for(org.leader), pending.id, evidence.id)

    def test_schema_rejects_second_evidence_row(self, org, pending):
        for name in ("a.png", "b.png"):
            _db.session.add(JustificationEvidence(
                tenant_id=org.tenant.id,
                justification_id=pending.id,
                file_name=name,
                file_path=f"x/{name}",
                mime_type="image/png",
                file_size=1,
                uploaded_by="ana@acme.com",
            ))
        with pytest.raises(IntegrityError):
            _db.session.commit()
        _db.session.rollback()


# ── File policy ──────────────────────────────────────────────────────────────


class TestFilePolicy:
    def test_mime_normalisation(self):
        assert check_mime("Image/PNG; charset=binary") == "image/png"
        assert check_mime(None) == "application/octet-stream"
        with pytest.raises(InvalidMimeError):
            check_mime("application/x-sh")

    @pytest.mark.parametrize("content", ["", "   ", None, "@@@not-base64@@@"])
    def test_invalid_payloads(self, content):
        with pytest.raises(InvalidFileError):
            decode_payload(content, max_bytes=1024)

    def test_data_url_and_bare_prefix(self):
        assert decode_payload(f"data:image/png;base64,{PNG_B64}", max_bytes=1024) == PNG_BYTES
        assert decode_payload(f"base64,{PNG_B64}", max_bytes=1024) == PNG_BYTES

    def test_size_cap(self):
        eleven = base64.b64encode(b"x" * 11).decode()
        assert decode_payload(eleven, max_bytes=11) == b"x" * 11
        with pytest.raises(FileTooLargeError):
            decode_payload(eleven, max_bytes=10)

    def test_size_cap_from_config(self, app, monkeypatch):
        monkeypatch.setitem(app.config, "MAX_EVIDENCE_BYTES", 8)
        with pytest.raises(FileTooLargeError):
            decode_payload(base64.b64encode(b"y" * 16).decode())

    def test_sanitize_file_name(self):
        assert sanitize_file_name("../../etc/passwd") == "passwd"
        assert sanitize_file_name("C:\\docs\\nota fiscal.pdf") == "nota_fiscal.pdf"
        assert sanitize_file_name("...") == "arquivo"
        assert len(sanitize_file_name("a" * 500 + ".pdf")) == 120

    def test_storage_refuses_paths_outside_root(self, tmp_path):
        storage = LocalEvidenceStorage(str(tmp_path))
        with pytest.raises(InvalidPathError):
            storage.resolve("../escape.txt")
        with pytest.raises(FileNotFoundOnDiskError):
            storage.open_path("1/missing.txt")
