"""Custom exceptions for database operations."""


class DatabaseError(Exception):
    """Base exception for database errors."""
    pass


class DatabaseConstraintError(DatabaseError):
    """Database constraint violation (duplicate, foreign key, etc)."""
    pass


class DatabaseOperationError(DatabaseError):
    """General database operation failed."""
    pass


class EntityNotFoundError(DatabaseError):
    """Requested entity not found, or not visible to the caller."""
    pass
