"""
Tests: Justification API endpoints.
"""

import base64
from datetime import date

import pytest

BASE = "/api/v1/justifications"
PDF_BYTES = b"%PDF-1.4 nota fiscal 123"


@pytest.fixture()
def late_task(org, make_task):
    """Ana's task due Jan 10th 2020, done on the 15th."""
    return make_task(org.tenant, org.ana, prazo=date(2020, 1, 10), realizado=date(2020, 1, 15),
                     competencia_ym="2020-01")


def _open(client, headers, task_id, description="Atraso por falta de insumos"):
    return client.post(BASE, json={"taskId": task_id, "description": description}, headers=headers)


def test_full_justification_flow(client, org, late_task, auth_headers):
    ana, leader = auth_headers(org.ana), auth_headers(org.leader)

    mine = client.get(f"{BASE}/mine", headers=ana).get_json()["items"]
    assert [(r["task"]["id"], r["justification_status"]) for r in mine] == [(late_task.id, "NONE")]

    res = _open(client, ana, late_task.id)
    assert res.status_code == 201
    just = res.get_json()
    assert just["status"] == "pending"
    assert just["evidences"] == []

    res = client.post(f"{BASE}/{just['id']}/evidences", json={
        "fileName": "nota.pdf",
        "mimeType": "application/pdf",
        "contentBase64": base64.b64encode(PDF_BYTES).decode(),
    }, headers=ana)
    assert res.status_code == 201
    evidence = res.get_json()
    assert evidence["file_size"] == len(PDF_BYTES)
    assert "file_path" not in evidence

    pending = client.get(f"{BASE}/pending", headers=leader).get_json()["items"]
    assert [p["id"] for p in pending] == [just["id"]]
    assert pending[0]["evidences"][0]["file_name"] == "nota.pdf"
    assert pending[0]["task"]["status"] == "Concluído em Atraso"

    res = client.get(f"{BASE}/{just['id']}/evidences/{evidence['id']}/download", headers=leader)
    assert res.status_code == 200
    assert res.data == PDF_BYTES
    assert res.mimetype == "application/pdf"
    assert "attachment" in res.headers["Content-Disposition"]
    res.close()

    res = client.put(f"{BASE}/{just['id']}/review", json={"action": "approve"}, headers=leader)
    assert res.status_code == 200
    assert res.get_json()["status"] == "approved"

    mine = client.get(f"{BASE}/mine", headers=ana).get_json()["items"]
    assert mine[0]["justification_status"] == "APPROVED"
    approved = client.get(f"{BASE}/approved?competenciaYm=2020-01", headers=leader).get_json()["items"]
    assert [a["id"] for a in approved] == [just["id"]]
    assert client.get(f"{BASE}/pending", headers=leader).get_json()["items"] == []


def test_conflicts(client, org, late_task, auth_headers):
    ana, leader = auth_headers(org.ana), auth_headers(org.leader)
    just = _open(client, ana, late_task.id).get_json()

    res = _open(client, ana, late_task.id, "de novo")
    assert res.status_code == 409
    assert res.get_json()["code"] == "PENDING_EXISTS"

    res = client.put(f"{BASE}/{just['id']}/review", json={"action": "talvez"}, headers=leader)
    assert res.status_code == 400
    assert res.get_json()["code"] == "VALIDATION"

    assert client.put(f"{BASE}/{just['id']}/review", json={"action": "refuse"}, headers=leader).status_code == 200
    res = client.put(f"{BASE}/{just['id']}/review", json={"action": "approve"}, headers=leader)
    assert res.status_code == 409
    assert res.get_json()["code"] == "ALREADY_REVIEWED"


def test_block_and_unblock(client, org, late_task, auth_headers):
    ana, leader = auth_headers(org.ana), auth_headers(org.leader)
    just = _open(client, ana, late_task.id).get_json()

    # Task listing is cached before the review and must reflect the block after it
    before = client.get("/api/v1/tasks", headers=leader).get_json()["items"]
    assert before[0]["justification_blocked"] is False

    res = client.put(f"{BASE}/{just['id']}/review",
                     json={"action": "refuse_and_block", "comment": "sem comprovante"}, headers=leader)
    assert res.status_code == 200
    assert res.get_json()["review_comment"] == "sem comprovante"

    after = client.get("/api/v1/tasks", headers=leader).get_json()["items"]
    assert after[0]["justification_blocked"] is True

    res = _open(client, ana, late_task.id, "nova tentativa")
    assert res.status_code == 400
    assert res.get_json()["code"] == "BLOCKED"

    blocked = client.get(f"{BASE}/blocked", headers=leader).get_json()["items"]
    assert [b["task"]["id"] for b in blocked] == [late_task.id]

    assert client.put(f"{BASE}/task/{late_task.id}/unblock", headers=ana).status_code == 403
    res = client.put(f"{BASE}/task/{late_task.id}/unblock", headers=leader)
    assert res.status_code == 200
    assert res.get_json()["justification_blocked"] is False
    assert client.get("/api/v1/tasks", headers=leader).get_json()["items"][0]["justification_blocked"] is False

    assert _open(client, ana, late_task.id, "nova tentativa").status_code == 201


def test_get_includes_task(client, org, late_task, auth_headers):
    just = _open(client, auth_headers(org.ana), late_task.id).get_json()

    res = client.get(f"{BASE}/{just['id']}", headers=auth_headers(org.leader))
    assert res.status_code == 200
    assert res.get_json()["task"]["id"] == late_task.id

    assert client.get(f"{BASE}/{just['id']}", headers=auth_headers(org.other_leader)).status_code == 404
    assert client.get(f"{BASE}/{just['id']}", headers=auth_headers(org.bruno)).status_code == 404


def test_evidence_errors_and_removal(client, org, late_task, auth_headers):
    ana = auth_headers(org.ana)
    just = _open(client, ana, late_task.id).get_json()
    url = f"{BASE}/{just['id']}/evidences"

    res = client.post(url, json={"file_name": "x.exe", "mime_type": "application/x-msdownload",
                                 "content_base64": "AAAA"}, headers=ana)
    assert res.status_code == 400
    assert res.get_json()["code"] == "INVALID_MIME"

    res = client.post(url, json={"file_name": "x.png", "mime_type": "image/png", "content_base64": ""},
                      headers=ana)
    assert res.status_code == 400
    assert res.get_json()["code"] == "INVALID_FILE"

    payload = {"file_name": "a.png", "mime_type": "image/png", "content": base64.b64encode(b"png").decode()}
    first = client.post(url, json=payload, headers=ana).get_json()
    res = client.post(url, json={**payload, "file_name": "b.png"}, headers=ana)
    assert res.status_code == 400
    assert res.get_json()["code"] == "MAX_EVIDENCE"

    res = client.delete(f"{url}/{first['id']}", headers=ana)
    assert res.status_code == 200
    assert res.get_json() == {"deleted": True, "id": first["id"]}
    assert client.get(f"{url}/{first['id']}/download", headers=ana).status_code == 404


def test_views_reject_users(client, org, auth_headers):
    for view in ("pending", "approved", "blocked"):
        res = client.get(f"{BASE}/{view}", headers=auth_headers(org.ana))
        assert res.status_code == 403, view
    assert client.get(f"{BASE}/mine", headers=auth_headers(org.leader)).status_code == 403


def test_review_accepts_camel_case_comment(client, org, late_task, auth_headers):
    just = _open(client, auth_headers(org.ana), late_task.id).get_json()
    res = client.put(f"{BASE}/{just['id']}/review",
                     json={"action": "refuse", "reviewComment": "faltou o comprovante"},
                     headers=auth_headers(org.leader))
    assert res.status_code == 200
    assert res.get_json()["review_comment"] == "faltou o comprovante"


def test_review_after_task_deleted_is_not_found(client, org, late_task, auth_headers):
    just = _open(client, auth_headers(org.ana), late_task.id).get_json()
    assert client.delete(f"/api/v1/tasks/{late_task.id}", headers=auth_headers(org.admin)).status_code == 200

    res = client.put(f"{BASE}/{just['id']}/review", json={"action": "refuse_and_block"},
                     headers=auth_headers(org.leader))
    assert res.status_code == 404
    assert res.get_json()["code"] == "NOT_FOUND"
