"""
Tests: tenant isolation.

Test blocks:
  1. Service layer: cross-tenant ids behave exactly like missing ids
  2. Scoped lookup guard: unscoped or mis-scoped lookups fail loudly
  3. Tenant context middleware: slug resolution, mismatch, unknown tenants
"""

from datetime import date

import pytest

from conftest import TODAY
from taskhub.core.exceptions import NotFoundError
from taskhub.models.auth import ROLE_ADMIN, ROLE_LEADER, ROLE_USER
from taskhub.models.task import Task
from taskhub.services import justification_service, task_service
from taskhub.services.helpers.scoped_queries import get_scoped, get_scoped_or_none
from taskhub.services.security_observability import get_recent_security_events
from taskhub.services.task_patch import TaskPatch


@pytest.fixture()
def beta(make_tenant, make_user, make_task):
    """Second tenant whose user shares an e-mail and area with acme's Ana."""
    tenant = make_tenant("beta")
    admin = make_user(tenant, "admin@beta.com", ROLE_ADMIN, "Diretoria")
    leader = make_user(tenant, "lider@beta.com", ROLE_LEADER, "Fiscal")
    ana = make_user(tenant, "ana@acme.com", ROLE_USER, "Fiscal")
    task = make_task(tenant, ana, prazo=date(2026, 2, 10), realizado=date(2026, 2, 12))
    return type("Beta", (), {"tenant": tenant, "admin": admin, "leader": leader, "ana": ana, "task": task})


# ── 1. Service layer ─────────────────────────────────────────────────────────


class TestServiceIsolation:
    def test_admin_cannot_reach_other_tenant_task(self, org, beta, actor_for):
        admin = actor_for(org.admin)
        with pytest.raises(NotFoundError):
            task_service.get_task(admin, beta.task.id)
        with pytest.raises(NotFoundError):
            task_service.update_task(admin, beta.task.id, TaskPatch(observacoes="x"), today=TODAY)
        with pytest.raises(NotFoundError):
            task_service.delete_task(admin, beta.task.id)
        with pytest.raises(NotFoundError):
            task_service.duplicate_task(admin, beta.task.id, today=TODAY)

    def test_same_email_in_other_tenant_sees_nothing(self, org, beta, actor_for):
        acme_ana = actor_for(org.ana)
        assert task_service.list_tasks(acme_ana, today=TODAY) == []
        with pytest.raises(NotFoundError):
            justification_service.create_justification(acme_ana, beta.task.id, "x", today=TODAY)

    def test_justifications_do_not_cross_tenants(self, org, beta, actor_for):
        just = justification_service.create_justification(actor_for(beta.ana), beta.task.id, "x", today=TODAY)

        with pytest.raises(NotFoundError):
            justification_service.review_justification(actor_for(org.admin), just.id, "approve")
        with pytest.raises(NotFoundError):
            justification_service.get_justification(actor_for(org.admin), just.id)
        with pytest.raises(NotFoundError):
            justification_service.unblock_task(actor_for(org.leader), beta.task.id)
        assert justification_service.list_pending(actor_for(org.admin)) == []
        assert [r["id"] for r in justification_service.list_pending(actor_for(beta.leader))] == [just.id]

    def test_subtask_parent_must_be_in_tenant(self, org, beta, actor_for):
        with pytest.raises(NotFoundError):
            task_service.create_task(
                actor_for(org.admin),
                {"parent_task_id": beta.task.id, "atividade": "x", "responsavel_email": "ana@acme.com"},
                today=TODAY,
            )


# ── 2. Scoped lookup guard ───────────────────────────────────────────────────


class TestScopedLookups:
    def test_plain_miss_is_not_a_security_event(self, beta):
        with pytest.raises(NotFoundError):
            get_scoped(Task, "no-such-id", tenant_id=beta.tenant.id)
        assert get_recent_security_events(event_type="cross_tenant_lookup") == []

    def test_missing_scope_raises_value_error(self, beta):
        with pytest.raises(ValueError, match="tenant_id"):
            get_scoped(Task, beta.task.id, tenant_id=None)

    def test_unknown_filter_column_raises_value_error(self, beta):
        with pytest.raises(ValueError, match="no column"):
            get_scoped(Task, beta.task.id, tenant_id=beta.tenant.id, project_id=1)

    def test_wrong_tenant_is_not_found(self, org, beta):
        with pytest.raises(NotFoundError) as exc:
            get_scoped(Task, beta.task.id, tenant_id=org.tenant.id, label="Tarefa")
        assert exc.value.message == "Tarefa não encontrado"
        events = get_recent_security_events(event_type="cross_tenant_lookup")
        assert len(events) == 1
        assert events[0]["tenant_id"] == org.tenant.id
        assert events[0]["details"] == {"resource": "Task", "resource_id": beta.task.id}
        assert get_scoped_or_none(Task, beta.task.id, tenant_id=org.tenant.id) is None
        assert get_scoped(Task, beta.task.id, tenant_id=beta.tenant.id).id == beta.task.id

    def test_soft_deleted_rows_are_hidden_by_default(self, beta):
        beta.task.soft_delete(by="test")
        assert get_scoped_or_none(Task, beta.task.id, tenant_id=beta.tenant.id) is None
        assert get_scoped(Task, beta.task.id, tenant_id=beta.tenant.id, include_deleted=True) is not None


# ── 3. Middleware ────────────────────────────────────────────────────────────


class TestTenantContext:
    def test_token_for_other_tenant_is_rejected(self, client, org, beta, auth_headers):
        headers = auth_headers(org.ana, slug="beta")
        res = client.get("/api/v1/tasks", headers=headers)
        assert res.status_code == 403
        assert res.get_json()["code"] == "TENANT_MISMATCH"
        events = get_recent_security_events(event_type="tenant_mismatch")
        assert len(events) == 1
        assert events[0]["tenant_id"] == beta.tenant.id

    def test_unknown_tenant_slug(self, client, org, auth_headers):
        res = client.get("/api/v1/tasks", headers=auth_headers(org.ana, slug="nope"))
        assert res.status_code == 404
        assert res.get_json()["code"] == "TENANT_NOT_FOUND"

    def test_inactive_tenant_is_not_found(self, client, make_tenant, make_user, auth_headers):
        dormant = make_tenant("dormant", is_active=False)
        user = make_user(dormant, "u@dormant.com")
        res = client.get("/api/v1/tasks", headers=auth_headers(user))
        assert res.status_code == 404
        assert res.get_json()["code"] == "TENANT_NOT_FOUND"

    def test_cross_tenant_id_over_http_is_not_found(self, client, org, beta, auth_headers):
        res = client.get(f"/api/v1/tasks/{beta.task.id}", headers=auth_headers(org.admin))
        assert res.status_code == 404
        assert res.get_json()["code"] == "NOT_FOUND"

    def test_tenant_from_query_param_outside_production(self, client, org, auth_headers):
        headers = auth_headers(org.ana)
        headers.pop("X-Tenant-Slug")
        res = client.get("/api/v1/tasks?tenant=acme", headers=headers)
        assert res.status_code == 200

    def test_tenant_from_subdomain(self, client, org, auth_headers):
        headers = auth_headers(org.ana)
        headers.pop("X-Tenant-Slug")
        res = client.get("/api/v1/tasks", headers=headers, base_url="http://acme.taskhub.example")
        assert res.status_code == 200

    def test_health_skips_tenant_resolution(self, client):
        res = client.get("/api/v1/health")
        assert res.status_code == 200
        assert res.get_json()["status"] == "ok"
