"""Standardised API error responses.

Usage
-----
    from taskhub.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "Tarefa não encontrada")
    return api_error(E.VALIDATION, "atividade é obrigatória", details={"atividade": "required"})
"""

from __future__ import annotations

from flask import jsonify

from taskhub.core.exceptions import AppError


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants.

    The values are the literal codes clients switch on, so they are kept
    identical to ``AppError.code`` of the matching exception class.
    """

    # Validation – HTTP 400
    VALIDATION = "VALIDATION"
    BLOCKED = "BLOCKED"
    FILE_TOO_LARGE = "FILE_TOO_LARGE"
    INVALID_MIME = "INVALID_MIME"
    INVALID_FILE = "INVALID_FILE"
    INVALID_PATH = "INVALID_PATH"
    MAX_EVIDENCE = "MAX_EVIDENCE"
    NO_RULE = "NO_RULE"
    RECORRENCIA_NOT_ALLOWED = "RECORRENCIA_NOT_ALLOWED"
    SUBTASKS_PENDING = "SUBTASKS_PENDING"
    TASK_CONCLUDED = "TASK_CONCLUDED"
    USER_NOT_FOUND = "USER_NOT_FOUND"
    INVALID_HOST = "INVALID_HOST"

    # Auth – HTTP 401
    UNAUTHORIZED = "UNAUTHORIZED"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    NO_USER = "NO_USER"
    BAD_CREDENTIALS = "BAD_CREDENTIALS"

    # Permissions – HTTP 403
    FORBIDDEN = "FORBIDDEN"
    INACTIVE = "INACTIVE"
    RESET_REQUIRED = "RESET_REQUIRED"
    TENANT_MISMATCH = "TENANT_MISMATCH"
    READ_ONLY_SESSION = "READ_ONLY_SESSION"

    # Not-found – HTTP 404
    NOT_FOUND = "NOT_FOUND"
    TENANT_NOT_FOUND = "TENANT_NOT_FOUND"
    FILE_NOT_FOUND = "FILE_NOT_FOUND"

    # Conflict – HTTP 409
    PENDING_EXISTS = "PENDING_EXISTS"
    ALREADY_REVIEWED = "ALREADY_REVIEWED"

    # Throttling – HTTP 429
    RATE_LIMITED = "RATE_LIMITED"

    # Server – HTTP 500
    DATABASE = "DATABASE"
    INTERNAL = "INTERNAL"


# ── Default HTTP status mapping ───────────────────────────────────────
_STATUS_GROUPS = {
    400: (
        E.VALIDATION, E.BLOCKED, E.FILE_TOO_LARGE, E.INVALID_MIME, E.INVALID_FILE,
        E.INVALID_PATH, E.MAX_EVIDENCE, E.NO_RULE, E.RECORRENCIA_NOT_ALLOWED,
        E.SUBTASKS_PENDING, E.TASK_CONCLUDED, E.USER_NOT_FOUND, E.INVALID_HOST,
    ),
    401: (E.UNAUTHORIZED, E.TOKEN_EXPIRED, E.NO_USER, E.BAD_CREDENTIALS),
    403: (E.FORBIDDEN, E.INACTIVE, E.RESET_REQUIRED, E.TENANT_MISMATCH, E.READ_ONLY_SESSION),
    404: (E.NOT_FOUND, E.TENANT_NOT_FOUND, E.FILE_NOT_FOUND),
    409: (E.PENDING_EXISTS, E.ALREADY_REVIEWED),
    429: (E.RATE_LIMITED,),
    500: (E.DATABASE, E.INTERNAL),
}
_DEFAULT_STATUS: dict[str, int] = {code: status for status, codes in _STATUS_GROUPS.items() for code in codes}


def api_error(code: str, message: str, *, status: int | None = None, details: dict | None = None):
    """Build the ``{"error", "code", "details"?}`` body and its HTTP status.

    Without an explicit *status* the code's group decides, falling back to 400
    for codes not listed above.
    """
    body: dict = {"error": message, "code": code}
    if details:
        body["details"] = details
    return jsonify(body), status or _DEFAULT_STATUS.get(code, 400)


def error_from_exception(exc: AppError):
    """Render an ``AppError`` raised by the service layer."""
    return api_error(exc.code, exc.message, status=exc.status, details=exc.details)
