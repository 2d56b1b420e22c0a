"""Domain error taxonomy.

Every error raised by the authorization and progress services derives from
AppError and carries a machine-readable ``code`` next to the user-facing
message. Each class also declares the HTTP status it answers with, using
FastAPI status constants; the exception handler in ``main`` reads it through
``status_for``. Services only raise these and never build responses.
"""

from uuid import UUID

from fastapi import status


class AppError(Exception):
    """Base error for the domain layer."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, code: str):
        self.message = message
        self.code = code
        super().__init__(message)


class NotFoundError(AppError):
    """Unknown user, course, module, lesson, request or grant."""

    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, message: str = "Recurso nao encontrado"):
        super().__init__(message, "not_found")


class ForbiddenError(AppError):
    """Category policy rejection or missing admin role."""

    status_code = status.HTTP_403_FORBIDDEN

    def __init__(self, message: str = "Acesso negado"):
        super().__init__(message, "forbidden")


class ConflictError(AppError):
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, message: str = "Conflito de estado", code: str = "conflict"):
        super().__init__(message, code)


class DuplicateRequestError(ConflictError):
    """A pending request already exists for the same user, course and lesson."""

    def __init__(self, existing_request_id: UUID | None = None):
        self.existing_request_id = existing_request_id
        super().__init__(
            "Ja existe uma solicitacao pendente para esta aula",
            "duplicate_request",
        )


class InvalidStateError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(
        self, message: str = "Operacao invalida no estado atual", code: str = "invalid_state"
    ):
        super().__init__(message, code)


class AlreadyProcessedError(InvalidStateError):
    """Approve or reject attempted on a request that is no longer pending."""

    def __init__(self, request_id: UUID | None = None, current_status: str | None = None):
        self.request_id = request_id
        self.current_status = current_status
        super().__init__("Solicitacao ja foi processada", "already_processed")


class StorageUnavailableError(AppError):
    """Persistence timed out or the cluster could not be reached."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    def __init__(self, message: str = "Armazenamento indisponivel, tente novamente"):
        super().__init__(message, "storage_unavailable")


class ValidationError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str = "Dados invalidos"):
        super().__init__(message, "validation_error")


def status_for(error: AppError) -> int:
    """HTTP status for a domain error."""
    return error.status_code
