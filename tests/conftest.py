"""
Shared pytest fixtures for the TaskHub test suite.

Provides:
    - app: Flask application (session-scoped, uploads in a temp dir)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - make_tenant / make_user / make_task: ORM factories
    - org: tenant "acme" with an admin, two leaders and three users
    - auth_headers: Bearer token + X-Tenant-Slug for a user
"""

from datetime import date
from types import SimpleNamespace

import pytest

from taskhub import create_app
from taskhub.core.actor import Actor
from taskhub.models import db as _db
from taskhub.models.auth import ROLE_ADMIN, ROLE_LEADER, ROLE_USER, Tenant, User
from taskhub.models.task import Task
from taskhub.services import cache_service
from taskhub.services.jwt_service import generate_access_token
from taskhub.services.security_observability import reset_security_events
from taskhub.services.task_lifecycle import derive_status
from taskhub.utils.crypto import hash_password

# Fixed calendar day for service-level tests that pass ``today`` explicitly.
TODAY = date(2026, 2, 15)


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app(tmp_path_factory):
    """Create the Flask application once per test session."""
    application = create_app("testing")
    application.config["UPLOAD_FOLDER"] = str(tmp_path_factory.mktemp("uploads"))
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        # Ids are reused after the tables are recreated; cached listings
        # from a previous test must not leak into this one.
        cache_service.reset_backend()
        reset_security_events()
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()
        cache_service.reset_backend()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Factories ────────────────────────────────────────────────────────────


@pytest.fixture()
def make_tenant():
    def _make(slug="acme", name=None, settings=None, is_active=True):
        tenant = Tenant(name=name or slug.title(), slug=slug, is_active=is_active, settings=settings or {})
        _db.session.add(tenant)
        _db.session.commit()
        return tenant

    return _make


@pytest.fixture()
def make_user():
    def _make(tenant, email, role=ROLE_USER, area="Fiscal", *, name=None, can_delete=False,
              password=None, is_active=True, must_change_password=False):
        user = User(
            tenant_id=tenant.id,
            email=email.lower(),
            name=name or email.split("@")[0].title(),
            role=role,
            area=area,
            can_delete=can_delete,
            is_active=is_active,
            password_hash=hash_password(password) if password else None,
            must_change_password=must_change_password,
        )
        _db.session.add(user)
        _db.session.commit()
        return user

    return _make


@pytest.fixture()
def make_task():
    def _make(tenant, responsible, *, prazo=None, realizado=None, parent=None, today=TODAY, **fields):
        values = {
            "competencia_ym": "2026-02",
            "recorrencia": "Mensal",
            "tipo": "Obrigação",
            "atividade": "Apuração de impostos",
            "area": responsible.area,
        }
        if parent is not None:
            values.update(
                competencia_ym=parent.competencia_ym,
                recorrencia=parent.recorrencia,
                tipo=parent.tipo,
                area=parent.area,
            )
            prazo = parent.prazo
        values.update(fields)
        task = Task(
            tenant_id=tenant.id,
            responsavel_email=responsible.email,
            responsavel_nome=responsible.name,
            prazo=prazo,
            realizado=realizado,
            parent_task_id=parent.id if parent is not None else None,
            status=derive_status(prazo, realizado, today).value,
            created_by="seed",
            **values,
        )
        _db.session.add(task)
        _db.session.commit()
        return task

    return _make


@pytest.fixture()
def org(make_tenant, make_user):
    """Tenant "acme" with one admin, leaders of Fiscal and Contábil, three users."""
    tenant = make_tenant("acme")
    return SimpleNamespace(
        tenant=tenant,
        admin=make_user(tenant, "admin@acme.com", ROLE_ADMIN, "Diretoria", can_delete=True),
        leader=make_user(tenant, "lider.fiscal@acme.com", ROLE_LEADER, "Fiscal"),
        other_leader=make_user(tenant, "lider.contabil@acme.com", ROLE_LEADER, "Contábil"),
        ana=make_user(tenant, "ana@acme.com", ROLE_USER, "Fiscal"),
        bruno=make_user(tenant, "bruno@acme.com", ROLE_USER, "Fiscal"),
        carla=make_user(tenant, "carla@acme.com", ROLE_USER, "Contábil"),
    )


@pytest.fixture()
def actor_for():
    def _actor(user, **kwargs):
        return Actor.from_user(user, **kwargs)

    return _actor


@pytest.fixture()
def auth_headers():
    def _headers(user, slug=None, **token_kwargs):
        token = generate_access_token(user, **token_kwargs)
        return {
            "Authorization": f"Bearer {token}",
            "X-Tenant-Slug": slug or user.tenant.slug,
        }

    return _headers
