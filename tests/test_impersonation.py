"""
Tests: login, token handling and read-only impersonation.
"""

import pytest

from taskhub.models.auth import ROLE_ADMIN, ROLE_USER
from taskhub.services.identity_service import is_platform_admin, seed_system_admin
from taskhub.services.jwt_service import decode_access_token, generate_access_token
from taskhub.services.security_observability import get_recent_security_events


@pytest.fixture()
def platform_admin(org):
    """ADMIN of the reserved system tenant, created next to tenant acme."""
    return seed_system_admin("root@taskhub.example", "S3nha-forte!", name="Root")


def _platform_headers(admin, slug):
    token = generate_access_token(admin, platform_admin=True)
    return {"Authorization": f"Bearer {token}", "X-Tenant-Slug": slug}


# ── Login ────────────────────────────────────────────────────────────────────


class TestLogin:
    def _login(self, client, email, password, slug="acme"):
        return client.post(
            "/api/v1/auth/login",
            json={"email": email, "password": password},
            headers={"X-Tenant-Slug": slug},
        )

    def test_login_returns_token(self, client, make_tenant, make_user):
        tenant = make_tenant("acme")
        make_user(tenant, "ana@acme.com", ROLE_USER, "Fiscal", password="segredo123")

        res = self._login(client, "ANA@acme.com", "segredo123")
        assert res.status_code == 200
        body = res.get_json()
        assert body["token_type"] == "Bearer"
        assert body["impersonating"] is False
        assert body["user"]["email"] == "ana@acme.com"
        claims = decode_access_token(body["access_token"])
        assert claims["tenant_id"] == tenant.id
        assert claims["platform_admin"] is False

    def test_platform_admin_login(self, client, platform_admin):
        assert is_platform_admin(platform_admin)
        res = self._login(client, "root@taskhub.example", "S3nha-forte!", slug="system")
        assert res.status_code == 200
        assert decode_access_token(res.get_json()["access_token"])["platform_admin"] is True

    def test_seed_is_idempotent(self, platform_admin):
        again = seed_system_admin("root@taskhub.example", "outra-senha")
        assert again.id == platform_admin.id

    @pytest.mark.parametrize("setup,email,password,status,code", [
        ({}, "ghost@acme.com", "x", 401, "NO_USER"),
        ({}, "ana@acme.com", "errada", 401, "BAD_CREDENTIALS"),
        ({"is_active": False}, "ana@acme.com", "segredo123", 403, "INACTIVE"),
        ({"must_change_password": True}, "ana@acme.com", "segredo123", 403, "RESET_REQUIRED"),
        ({}, "ana@acme.com", "", 400, "VALIDATION"),
    ])
    def test_login_errors(self, client, make_tenant, make_user, setup, email, password, status, code):
        tenant = make_tenant("acme")
        make_user(tenant, "ana@acme.com", password="segredo123", **setup)

        res = self._login(client, email, password)
        assert res.status_code == status
        assert res.get_json()["code"] == code

    def test_login_is_tenant_scoped(self, client, make_tenant, make_user):
        make_user(make_tenant("acme"), "ana@acme.com", password="segredo123")
        make_tenant("beta")
        res = self._login(client, "ana@acme.com", "segredo123", slug="beta")
        assert res.status_code == 401
        assert res.get_json()["code"] == "NO_USER"


# ── Token handling ───────────────────────────────────────────────────────────


class TestTokens:
    def test_missing_token(self, client, org):
        res = client.get("/api/v1/tasks", headers={"X-Tenant-Slug": "acme"})
        assert res.status_code == 401
        assert res.get_json()["code"] == "UNAUTHORIZED"

    def test_garbage_token(self, client, org):
        res = client.get(
            "/api/v1/tasks",
            headers={"Authorization": "Bearer not-a-jwt", "X-Tenant-Slug": "acme"},
        )
        assert res.status_code == 401
        assert res.get_json()["code"] == "UNAUTHORIZED"
        assert get_recent_security_events(event_type="invalid_token")

    def test_expired_token(self, app, client, org, auth_headers, monkeypatch):
        monkeypatch.setitem(app.config, "JWT_ACCESS_EXPIRES", -30)
        res = client.get("/api/v1/tasks", headers=auth_headers(org.ana))
        assert res.status_code == 401
        assert res.get_json()["code"] == "TOKEN_EXPIRED"

    def test_me_reports_actor_and_user(self, client, org, auth_headers):
        res = client.get("/api/v1/auth/me", headers=auth_headers(org.leader))
        assert res.status_code == 200
        body = res.get_json()
        assert body["actor"]["role"] == "LEADER"
        assert body["actor"]["area"] == "Fiscal"
        assert body["user"]["email"] == "lider.fiscal@acme.com"


# ── Impersonation ────────────────────────────────────────────────────────────


class TestImpersonation:
    def _start(self, client, admin, user_id, slug="acme"):
        return client.post(
            "/api/v1/auth/impersonate",
            json={"user_id": user_id},
            headers=_platform_headers(admin, slug),
        )

    def test_full_read_only_session(self, client, org, platform_admin, make_task):
        make_task(org.tenant, org.ana)
        make_task(org.tenant, org.bruno)

        res = self._start(client, platform_admin, org.ana.id)
        assert res.status_code == 200
        body = res.get_json()
        assert body["impersonating"] is True
        assert body["user"]["email"] == "ana@acme.com"
        headers = {"Authorization": f"Bearer {body['access_token']}", "X-Tenant-Slug": "acme"}

        # Reads see exactly what Ana sees
        listing = client.get("/api/v1/tasks", headers=headers).get_json()
        assert {t["responsavel_email"] for t in listing["items"]} == {"ana@acme.com"}

        me = client.get("/api/v1/auth/me", headers=headers).get_json()
        assert me["actor"]["impersonating"] is True
        assert me["actor"]["impersonator_id"] == platform_admin.id

        # Writes are refused before reaching the views
        res = client.post("/api/v1/tasks", json={"atividade": "x"}, headers=headers)
        assert res.status_code == 403
        assert res.get_json()["code"] == "READ_ONLY_SESSION"
        task_id = listing["items"][0]["id"]
        res = client.put(f"/api/v1/tasks/{task_id}", json={"observacoes": "x"}, headers=headers)
        assert res.status_code == 403
        assert res.get_json()["code"] == "READ_ONLY_SESSION"
        assert get_recent_security_events(event_type="read_only_violation")

        res = client.post("/api/v1/auth/impersonate/stop", headers=headers)
        assert res.status_code == 200
        body = res.get_json()
        assert body["impersonating"] is False
        assert body["user"]["email"] == "root@taskhub.example"
        assert decode_access_token(body["access_token"])["platform_admin"] is True

    def test_tenant_admin_cannot_impersonate(self, client, org, auth_headers):
        res = client.post(
            "/api/v1/auth/impersonate",
            json={"user_id": org.ana.id},
            headers=auth_headers(org.admin),
        )
        assert res.status_code == 403
        assert res.get_json()["code"] == "FORBIDDEN"

    def test_system_users_cannot_be_impersonated(self, client, platform_admin, make_user):
        other = make_user(platform_admin.tenant, "ops@taskhub.example", ROLE_ADMIN, "Sistema")
        res = self._start(client, platform_admin, other.id, slug="system")
        assert res.status_code == 403

    def test_unknown_or_foreign_user_is_not_found(self, client, org, platform_admin, make_tenant, make_user):
        foreign = make_user(make_tenant("beta"), "x@beta.com")
        assert self._start(client, platform_admin, foreign.id).status_code == 404
        assert self._start(client, platform_admin, 999999).status_code == 404

    def test_user_id_required(self, client, org, platform_admin):
        res = self._start(client, platform_admin, "abc")
        assert res.status_code == 400
        assert res.get_json()["code"] == "VALIDATION"

    def test_stop_without_session(self, client, org, auth_headers):
        res = client.post("/api/v1/auth/impersonate/stop", headers=auth_headers(org.admin))
        assert res.status_code == 400


# ── Platform admin acting in a tenant ────────────────────────────────────────


def test_platform_admin_is_rebound_to_requested_tenant(client, org, platform_admin, make_task):
    task = make_task(org.tenant, org.carla)
    headers = _platform_headers(platform_admin, "acme")

    listing = client.get("/api/v1/tasks", headers=headers).get_json()
    assert [t["id"] for t in listing["items"]] == [task.id]

    me = client.get("/api/v1/auth/me", headers=headers).get_json()
    assert me["actor"]["tenant_id"] == org.tenant.id
    assert me["user"] is None
    assert get_recent_security_events(event_type="tenant_mismatch") == []
