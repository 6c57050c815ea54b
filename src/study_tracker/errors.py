from __future__ import annotations


class StudyError(Exception):
    """Base for every failure a caller is expected to show to the user."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(StudyError):
    pass


class Unauthorized(StudyError):
    def __init__(self, message: str = "Unauthorized") -> None:
        super().__init__(message)


class NotFound(StudyError):
    pass


class InvalidSessionState(StudyError):
    pass


class TransientIOError(StudyError):
    pass
