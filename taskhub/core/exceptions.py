"""
Application exception hierarchy.

Services raise these; blueprints register a single handler against
``AppError`` and render ``{"error": message, "code": code}`` with the
status carried by the exception. Every business failure has exactly one
class here so callers can match on the type instead of parsing messages.

Usage:
    from taskhub.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Task", resource_id=task_id)
    raise ValidationError("Descrição é obrigatória", details={"description": "required"})
"""


class AppError(Exception):
    """Base for every error that maps to a client-visible code.

    Args:
        message: Human-readable explanation.
        details: Optional field-level breakdown for structured responses.
    """

    code = "INTERNAL"
    status = 500

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)


class NotFoundError(AppError):
    """Raised when a resource does not exist within the caller's tenant.

    Security note: used for BOTH genuinely missing records AND cross-tenant
    or out-of-scope lookups. A 403 would confirm the resource exists; a 404
    does not.

    Args:
        resource: Entity name (e.g. "Task", "Justification").
        resource_id: The PK that was looked up. Logged, not returned.
        tenant_id: Optional scope that was enforced. For debug logging only.
    """

    code = "NOT_FOUND"
    status = 404

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        tenant_id: int | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.tenant_id = tenant_id
        super().__init__(f"{resource} não encontrado")

    def __str__(self) -> str:
        msg = self.resource
        if self.resource_id is not None:
            msg += f" id={self.resource_id}"
        msg += " not found"
        if self.tenant_id is not None:
            msg += f" (tenant={self.tenant_id})"
        return msg


class ValidationError(AppError):
    """Input was well-formed but broke a business rule."""

    code = "VALIDATION"
    status = 400


class ForbiddenError(AppError):
    code = "FORBIDDEN"
    status = 403


class BlockedError(AppError):
    """The task is barred from new justifications until a reviewer unblocks it."""

    code = "BLOCKED"
    status = 400


class PendingExistsError(AppError):
    code = "PENDING_EXISTS"
    status = 409


class AlreadyReviewedError(AppError):
    code = "ALREADY_REVIEWED"
    status = 409


class FileTooLargeError(AppError):
    code = "FILE_TOO_LARGE"
    status = 400


class InvalidMimeError(AppError):
    code = "INVALID_MIME"
    status = 400


class InvalidFileError(AppError):
    code = "INVALID_FILE"
    status = 400


class EvidenceLimitError(AppError):
    code = "MAX_EVIDENCE"
    status = 400


class InvalidPathError(AppError):
    code = "INVALID_PATH"
    status = 400


class FileNotFoundOnDiskError(AppError):
    code = "FILE_NOT_FOUND"
    status = 404


class NoRuleError(AppError):
    """No recurrence rule is configured for the user's area."""

    code = "NO_RULE"
    status = 400


class RecurrenceNotAllowedError(AppError):
    code = "RECORRENCIA_NOT_ALLOWED"
    status = 400


class SubtasksPendingError(AppError):
    code = "SUBTASKS_PENDING"
    status = 400


class TaskConcludedError(AppError):
    """Evidence upload on a task that already has a completion date."""

    code = "TASK_CONCLUDED"
    status = 400


class UserNotFoundError(AppError):
    code = "USER_NOT_FOUND"
    status = 400


class ReadOnlySessionError(AppError):
    """Write attempted from an impersonation session."""

    code = "READ_ONLY_SESSION"
    status = 403


class AuthError(AppError):
    """Authentication or session-binding failure.

    The code varies (NO_USER, INACTIVE, RESET_REQUIRED, BAD_CREDENTIALS,
    UNAUTHORIZED, TOKEN_EXPIRED, TENANT_MISMATCH, TENANT_NOT_FOUND), so it is
    set per instance.
    """

    status = 401

    def __init__(self, code: str, message: str, status: int = 401) -> None:
        self.code = code
        self.status = status
        super().__init__(message)
