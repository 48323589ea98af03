"""Shared parsing helpers used by services and blueprints.

parse_task_date:     task due/done dates (raises ValidationError on bad input)
parse_competencia:   YYYY-MM reference month
clean_text:          trimmed optional text with a length cap
"""
import logging
import re
from datetime import date, datetime

from taskhub.core.exceptions import ValidationError

logger = logging.getLogger(__name__)

_ISO_DATE_PREFIX = re.compile(r"^(\d{4})-(\d{2})-(\d{2})(?:$|[T ])")
_BR_DATE = re.compile(r"^(\d{2})/(\d{2})/(\d{4})$")
_COMPETENCIA = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


def parse_task_date(value, field: str = "data") -> date | None:
    """Parse a task date, keeping the calendar day exactly as written.

    Supports:
    - ``date`` objects (``datetime`` is narrowed to its date part)
    - YYYY-MM-DD
    - ISO datetimes: only the YYYY-MM-DD prefix is used, any time or offset
      is ignored so the effective day never shifts across timezones
    - DD/MM/YYYY

    Empty input returns None. Anything else raises ValidationError.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    text = str(value).strip()
    m = _ISO_DATE_PREFIX.match(text)
    if m:
        year, month, day = (int(g) for g in m.groups())
    else:
        m = _BR_DATE.match(text)
        if not m:
            raise ValidationError(
                f"{field}: formato de data inválido. Use YYYY-MM-DD ou DD/MM/YYYY.",
                details={field: "invalid_date"},
            )
        day, month, year = (int(g) for g in m.groups())

    try:
        return date(year, month, day)
    except ValueError as exc:
        raise ValidationError(
            f"{field}: data inexistente",
            details={field: "invalid_date"},
        ) from exc


def parse_competencia(value, required: bool = True) -> str | None:
    """Validate a YYYY-MM reference month."""
    text = (value or "").strip() if isinstance(value, str) else value
    if not text:
        if required:
            raise ValidationError("competenciaYm é obrigatório", details={"competencia_ym": "required"})
        return None
    if not isinstance(text, str) or not _COMPETENCIA.match(text):
        raise ValidationError("competenciaYm deve estar no formato YYYY-MM", details={"competencia_ym": "invalid"})
    return text


def clean_text(value, field: str, max_len: int, required: bool = False) -> str | None:
    """Trim *value*; enforce presence and a maximum length."""
    if value is not None and not isinstance(value, str):
        raise ValidationError(f"{field} deve ser texto", details={field: "invalid"})
    text = (value or "").strip()
    if not text:
        if required:
            raise ValidationError(f"{field} é obrigatório", details={field: "required"})
        return None
    if len(text) > max_len:
        raise ValidationError(
            f"{field} excede {max_len} caracteres",
            details={field: f"max_length:{max_len}"},
        )
    return text
