"""
Task lifecycle: status derivation.

A task's status is never chosen by a caller. It is a pure function of the
due date (prazo), the completion date (realizado) and the calendar day used
as "today":

    realizado   prazo          status
    ---------   -----------    ---------------------
    None        None/>=today   Em Andamento
    None        < today        Em Atraso
    set         None/>=real.   Concluído
    set         < realizado    Concluído em Atraso

Late completion is strictly greater-than: finishing on the due date is on
time. "Today" is a calendar day in the tenant's timezone (default
America/Sao_Paulo), never a UTC timestamp.

This module imports nothing from the ORM so models can use it for
serialisation.
"""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

DEFAULT_TIMEZONE = "America/Sao_Paulo"


class TaskStatus(str, Enum):
    EM_ANDAMENTO = "Em Andamento"
    EM_ATRASO = "Em Atraso"
    CONCLUIDO = "Concluído"
    CONCLUIDO_EM_ATRASO = "Concluído em Atraso"


STATUS_VALUES = tuple(s.value for s in TaskStatus)


def reference_today(tz_name: str | None = None) -> date:
    """Current calendar day in *tz_name* (falls back to the default zone)."""
    try:
        tz = ZoneInfo(tz_name or DEFAULT_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError):
        tz = ZoneInfo(DEFAULT_TIMEZONE)
    return datetime.now(tz).date()


def derive_status(prazo: date | None, realizado: date | None, today: date | None = None) -> TaskStatus:
    """Return the lifecycle status for the given dates.

    Total over all inputs; ``today`` defaults to the reference-zone day.
    """
    if realizado is None:
        if prazo is None:
            return TaskStatus.EM_ANDAMENTO
        if today is None:
            today = reference_today()
        return TaskStatus.EM_ATRASO if prazo < today else TaskStatus.EM_ANDAMENTO

    if prazo is not None and realizado > prazo:
        return TaskStatus.CONCLUIDO_EM_ATRASO
    return TaskStatus.CONCLUIDO


def is_completed(status: str | TaskStatus) -> bool:
    value = status.value if isinstance(status, TaskStatus) else status
    return value in (TaskStatus.CONCLUIDO.value, TaskStatus.CONCLUIDO_EM_ATRASO.value)
