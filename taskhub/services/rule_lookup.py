"""
Rule lookup: which recurrences a USER may self-assign, per area.

The task service depends only on the ``RuleLookup`` protocol; the default
implementation reads the ``rules`` table. Tests and alternative deployments
can pass any object with the same method.
"""

from __future__ import annotations

from typing import Protocol

from sqlalchemy import select

from taskhub.models import db
from taskhub.models.rule import Rule


class RuleLookup(Protocol):
    def get_allowed_recurrences(self, tenant_id: int, area: str) -> set[str]:
        ...


class DbRuleLookup:
    """Reads ``Rule.allowed_recorrencias`` for (tenant, area)."""

    def get_allowed_recurrences(self, tenant_id: int, area: str) -> set[str]:
        rule = db.session.execute(
            select(Rule).where(Rule.tenant_id == tenant_id, Rule.area == area)
        ).scalar_one_or_none()
        if rule is None:
            return set()
        return {str(r).strip() for r in (rule.allowed_recorrencias or []) if str(r).strip()}


default_rule_lookup = DbRuleLookup()
