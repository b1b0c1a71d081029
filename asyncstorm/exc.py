"""
Exceptions for asyncstorm.
"""


class DatabaseException(Exception):
    """
    The base class for ALL exceptions.

    Catch this if you wish to catch any custom exception raised inside the lib.
    """


class SchemaError(DatabaseException):
    """
    Raised when there is an error in a model declaration, e.g. a relation pointing at a model
    that does not exist.
    """


class UsageError(DatabaseException):
    """
    Raised when the API is used in a way it does not support.

    These are programming errors; they are raised before anything is sent to the database.
    """


class NoSuchFieldError(UsageError):
    """
    Raised when a non-existing field is requested, for example in a lookup path.
    """


class ValidationError(DatabaseException):
    """
    Raised when a field rejects the value stored on a row.
    """

    def __init__(self, field: str, reason: str):
        #: The name of the field that failed to validate.
        self.field = field

        #: The reason given by the field.
        self.reason = reason

        super().__init__("Field '{}': {}".format(field, reason))


class CardinalityError(DatabaseException):
    """
    Raised when a query expected exactly one row.
    """


class DoesNotExist(CardinalityError):
    """
    Raised when no row matched.
    """


class MultipleObjectsReturned(CardinalityError):
    """
    Raised when more than one row matched.
    """


class StorageError(DatabaseException):
    """
    Raised when the database engine reports a failure.
    """


class IntegrityError(StorageError):
    """
    Raised when a column's integrity is not preserved (e.g. null or unique violations).
    """


class OperationalError(StorageError):
    """
    Raised when an operational error has occurred.
    """
