"""Domain errors raised by services.

Each error maps to a single HTTP status so controllers can translate
them without inspecting messages. None of them is transient; callers
must not retry.
"""


class StudyError(Exception):
    """Base class for business-rule violations scoped to one request."""
    status_code = 400

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__name__)


class ValidationFailed(StudyError):
    status_code = 400


class NotFound(StudyError):
    status_code = 404


class QuizNotFound(NotFound):
    pass


class Unauthorized(StudyError):
    """The caller does not own the resource it tried to read or change."""
    status_code = 403


class Conflict(StudyError):
    status_code = 409


class AlreadyAnswered(Conflict):
    pass


class InvalidOption(StudyError):
    status_code = 400


class SelfAnswerForbidden(StudyError):
    status_code = 403
