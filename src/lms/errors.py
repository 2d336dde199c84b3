"""Domain error taxonomy.

Every business-rule violation is raised as one of these classes. The global
handlers in ``lms.middleware.error_handler`` render them as
``{"detail": message, "code": code}`` with the class's HTTP status.
"""

from __future__ import annotations


class AppError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code: int = 500
    code: str = "InternalError"
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AppError):
    status_code = 400
    code = "ValidationError"
    default_message = "Invalid request"


class AuthError(AppError):
    status_code = 401
    code = "AuthError"
    default_message = "Authentication required"


class ForbiddenError(AppError):
    status_code = 403
    code = "ForbiddenError"
    default_message = "Access denied"


class NotFoundError(AppError):
    status_code = 404
    code = "NotFoundError"
    default_message = "Not found"


class ConflictError(AppError):
    status_code = 409
    code = "ConflictError"
    default_message = "Resource already exists"


class InternalError(AppError):
    pass


# ---------------------------------------------------------------------------
# Enrollment & quota
# ---------------------------------------------------------------------------


class AlreadyEnrolled(ConflictError):
    code = "AlreadyEnrolled"
    default_message = "Already enrolled in this module"


class NoSubscription(ForbiddenError):
    code = "NoSubscription"
    default_message = "No active subscription"


class QuotaExceeded(ForbiddenError):
    code = "QuotaExceeded"
    default_message = "Module limit reached for your subscription tier"


class ModuleNotInBundle(ForbiddenError):
    code = "ModuleNotInBundle"
    default_message = "Module is not part of your selected bundle"


# ---------------------------------------------------------------------------
# Progress & sessions
# ---------------------------------------------------------------------------


class NotEnrolled(ForbiddenError):
    code = "NotEnrolled"
    default_message = "You are not enrolled in this module"


class ModuleNotFound(NotFoundError):
    code = "ModuleNotFound"
    default_message = "Module not found"


class LessonNotFound(NotFoundError):
    code = "LessonNotFound"
    default_message = "Lesson not found"


class SessionNotFound(NotFoundError):
    code = "SessionNotFound"
    default_message = "Session not found"


# ---------------------------------------------------------------------------
# Subscriptions
# ---------------------------------------------------------------------------


class InvalidModuleSelection(ValidationError):
    code = "InvalidModuleSelection"
    default_message = "Invalid module selection"
