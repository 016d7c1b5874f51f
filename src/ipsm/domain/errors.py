class AppError(Exception):
    """Base app error."""


class ValidationError(AppError):
    pass


class NotFoundError(AppError):
    pass


class ConflictError(AppError):
    pass


class DuplicateKeyError(ConflictError):
    pass


class PersistenceError(AppError):
    pass


class InvalidCodeError(AppError):
    """A stored transaction code does not match its expected format."""
