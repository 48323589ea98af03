"""
TaskPatch: the closed set of fields a task update may carry.

``UNSET`` means "leave unchanged"; ``None`` means "clear". Status is not a
member: it is always recomputed from the dates.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from datetime import date

from taskhub.core.exceptions import ValidationError
from taskhub.utils.helpers import clean_text, parse_competencia, parse_task_date


class _Unset:
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self):
        return "UNSET"

    def __bool__(self):
        return False


UNSET = _Unset()

ATIVIDADE_MAX = 200
OBSERVACOES_MAX = 1000
RECORRENCIA_MAX = 50
TIPO_MAX = 80
AREA_MAX = 120

# Column widths of the free-text fields in models/task.py
_TEXT_CAPS = {"recorrencia": RECORRENCIA_MAX, "tipo": TIPO_MAX, "area": AREA_MAX}

# Fields a USER may change on their own task
USER_EDITABLE_FIELDS = frozenset({"observacoes", "realizado"})

# Request body keys accepted in addition to the field names (camelCase clients)
_ALIASES = {
    "competenciaYm": "competencia_ym",
    "responsavelEmail": "responsavel_email",
}


@dataclass(frozen=True)
class TaskPatch:
    competencia_ym: str | _Unset = UNSET
    recorrencia: str | _Unset = UNSET
    tipo: str | _Unset = UNSET
    atividade: str | _Unset = UNSET
    responsavel_email: str | _Unset = UNSET
    area: str | _Unset = UNSET
    prazo: date | None | _Unset = UNSET
    realizado: date | None | _Unset = UNSET
    observacoes: str | None | _Unset = UNSET

    def touched(self) -> set[str]:
        """Names of the fields the patch sets (including explicit clears)."""
        return {f.name for f in fields(self) if getattr(self, f.name) is not UNSET}

    def touches(self, name: str) -> bool:
        return getattr(self, name) is not UNSET

    @classmethod
    def from_payload(cls, data: dict) -> TaskPatch:
        """Validate a request body into a patch.

        Unknown keys are rejected; ``status`` in particular is never accepted.
        """
        if not isinstance(data, dict):
            raise ValidationError("Corpo da requisição inválido")

        known = {f.name for f in fields(cls)}
        values: dict = {}
        unknown = []
        for key, raw in data.items():
            name = _ALIASES.get(key, key)
            if name not in known:
                unknown.append(key)
                continue
            values[name] = raw
        if unknown:
            raise ValidationError(
                f"Campos não permitidos: {', '.join(sorted(unknown))}",
                details={k: "not_allowed" for k in unknown},
            )

        parsed: dict = {}
        for name, raw in values.items():
            if name in ("prazo", "realizado"):
                parsed[name] = parse_task_date(raw, name)
            elif name == "competencia_ym":
                parsed[name] = parse_competencia(raw)
            elif name == "atividade":
                parsed[name] = clean_text(raw, name, ATIVIDADE_MAX, required=True)
            elif name == "observacoes":
                parsed[name] = clean_text(raw, name, OBSERVACOES_MAX)
            elif name == "responsavel_email":
                parsed[name] = clean_text(raw, name, 200, required=True).lower()
            else:
                parsed[name] = clean_text(raw, name, _TEXT_CAPS[name], required=True)
        return cls(**parsed)
