class ExamPlatformError(Exception):
    """Base class for errors raised by the exam services."""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ExamPlatformError):
    """Missing or malformed input, e.g. an unknown stageId."""
    status_code = 400


class NotFoundError(ExamPlatformError):
    status_code = 404


class TransientStoreError(ExamPlatformError):
    """The database was unreachable or timed out. Safe for the caller to retry."""
    status_code = 503


class InvariantViolation(ExamPlatformError):
    """Stored data breaks an assumption the services rely on, e.g. a stage with no questions."""
    status_code = 500
