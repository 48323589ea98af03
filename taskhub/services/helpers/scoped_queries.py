"""
Tenant-scoped query helpers.

Every get-by-id MUST go through these helpers instead of
``db.session.get(Model, pk)``. A bare ``.get()`` bypasses tenant isolation.

Usage:
    task = get_scoped(Task, task_id, tenant_id=actor.tenant_id)
    ev = get_scoped(JustificationEvidence, eid, tenant_id=tid, justification_id=jid)
    task = get_scoped_or_none(Task, parent_id, tenant_id=tid)

Cross-tenant ids are indistinguishable from missing ids: both raise
NotFoundError → HTTP 404.
"""

import logging

from sqlalchemy import select

from taskhub.core.exceptions import NotFoundError
from taskhub.models import db
from taskhub.services.security_observability import EVENT_CROSS_TENANT_LOOKUP, record_security_event

logger = logging.getLogger(__name__)


def get_scoped(model, pk, *, tenant_id: int, include_deleted: bool = False, label: str | None = None, **filters):
    """Fetch a single entity by PK inside *tenant_id*.

    Args:
        model: SQLAlchemy model with ``id`` and ``tenant_id`` columns.
        pk: Primary key value.
        tenant_id: Mandatory tenant scope.
        include_deleted: For soft-deletable models, also match deleted rows.
        label: Resource name used in the error (defaults to the class name).
        **filters: Extra equality filters; each must name a real column.

    Raises:
        ValueError: tenant_id missing, or a filter names a non-existent column.
        NotFoundError: no row in scope.
    """
    if tenant_id is None:
        raise ValueError(
            f"{model.__name__} id={pk} requires a tenant_id scope. "
            "Unscoped lookups are forbidden because they bypass tenant isolation."
        )
    missing = [name for name in filters if not hasattr(model, name)]
    if missing:
        raise ValueError(f"{model.__name__} has no column(s) {sorted(missing)}")

    stmt = select(model).where(model.id == pk, model.tenant_id == tenant_id)
    for field, value in filters.items():
        stmt = stmt.where(getattr(model, field) == value)
    if not include_deleted and hasattr(model, "deleted_at"):
        stmt = stmt.where(model.deleted_at.is_(None))

    result = db.session.execute(stmt).scalar_one_or_none()
    if result is None:
        logger.debug("get_scoped: %s id=%s not found in tenant %s", model.__name__, pk, tenant_id)
        _record_if_foreign(model, pk, tenant_id)
        raise NotFoundError(resource=label or model.__name__, resource_id=pk, tenant_id=tenant_id)
    return result


def get_scoped_or_none(model, pk, *, tenant_id: int, **kwargs):
    """Same as get_scoped but returns None instead of raising NotFoundError."""
    try:
        return get_scoped(model, pk, tenant_id=tenant_id, **kwargs)
    except NotFoundError:
        return None


def _record_if_foreign(model, pk, tenant_id: int) -> None:
    """Flag a miss whose id exists in another tenant. The caller still gets 404."""
    owner = db.session.execute(select(model.tenant_id).where(model.id == pk)).scalar_one_or_none()
    if owner is not None and owner != tenant_id:
        record_security_event(
            event_type=EVENT_CROSS_TENANT_LOOKUP,
            reason=f"{model.__name__.lower()}_in_other_tenant",
            severity="high",
            tenant_id=tenant_id,
            details={"resource": model.__name__, "resource_id": str(pk)},
        )
