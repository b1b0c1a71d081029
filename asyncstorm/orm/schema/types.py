import abc
import typing

from asyncstorm.exc import UsageError
from asyncstorm.orm.schema import column as md_column


class ColumnType(abc.ABC):
    """
    Implements the serialization contract for a :class:`.Column`.

    The ColumnType is responsible for turning Python values into SQL literals for the statements
    the ORM generates (:meth:`.ColumnType.encode`), for turning stored values back into Python
    values (:meth:`.ColumnType.decode`), and for rejecting values that can't be stored
    (:meth:`.ColumnType.validate`).

    .. code-block:: python3

        class Shouting(String):
            def encode(self, value):
                return super().encode(value.upper())

        class User(Model):
            name = Column(Shouting(20))

    The only method that is required to be implemented on children is :meth:`.ColumnType.sql`
    and :meth:`.ColumnType.encode`; the other defaults will work fine for simple types.
    """
    __slots__ = ("column",)

    #: If a missing value is acceptable for a primary key of this type, because a surrogate key
    #: can be generated for it.
    generates_key = False

    #: If values of this type reference a single row of another model, which lookups can follow.
    is_foreign_key = False

    def __init__(self):
        #: The column this type object is associated with.
        self.column = None  # type: md_column.Column

    def __repr__(self):
        return "<{}>".format(type(self).__name__)

    @abc.abstractmethod
    def sql(self) -> str:
        """
        :return: The str SQL name of this type.
        """

    @abc.abstractmethod
    def encode(self, value: typing.Any) -> str:
        """
        Renders a (non-None) value as a SQL literal.

        :param value: The value to encode.
        :return: A str that can be placed directly in a statement.
        """

    async def decode(self, value: typing.Any) -> typing.Any:
        """
        Converts a (non-None) stored value into a Python value.

        :param value: The value from the database.
        """
        return value

    def validate(self, value: typing.Any) -> typing.Optional[str]:
        """
        Validates a (non-None) value.

        :param value: The value to check.
        :return: None if the value is valid, or a str describing why it isn't.
        """
        return None

    def on_set(self, row, value: typing.Any) -> typing.Any:
        """
        Called when a value is set on this column of a row.

        :param row: The row the value is being set on.
        :param value: The value being set.
        :return: The value that should be stored in the row.
        """
        return value

    def default_db_column(self, name: str) -> typing.Optional[str]:
        """
        :param name: The field name of the column.
        :return: The storage column name used when the column doesn't specify one.
        """
        return name

    @classmethod
    def create_default(cls) -> 'ColumnType':
        """
        Creates the default object for this type in the event that a type is passed to a column,
        instead of an instance.
        """
        return cls()


class String(ColumnType):
    """
    Represents a VARCHAR() type.
    """

    def __init__(self, max_length: int = 255):
        super().__init__()
        #: The max length of this String.
        self.max_length = max_length

    def sql(self):
        # an unbounded varchar if there's no length
        if self.max_length is not None and self.max_length >= 0:
            return "VARCHAR({})".format(self.max_length)
        else:
            return "VARCHAR"

    def encode(self, value):
        return "'{}'".format(str(value).replace("'", "''"))

    async def decode(self, value):
        return str(value)

    def validate(self, value):
        if not isinstance(value, str):
            return "Value {!r} is not a string".format(value)

        if self.max_length is not None and 0 <= self.max_length < len(value):
            return "Value {!r} is more than {} chars long".format(value, self.max_length)

        return None


class Text(String):
    """
    Represents a TEXT type.
    TEXT type columns are very similar to String type objects, except that they have no size limit.
    """

    def __init__(self):
        # unlimited size
        super().__init__(max_length=None)

    def sql(self):
        return "TEXT"


class Boolean(ColumnType):
    """
    Represents a BOOLEAN type. Stored as ``1``/``0``.
    """

    def sql(self):
        return "BOOLEAN"

    def encode(self, value):
        return "1" if value else "0"

    async def decode(self, value):
        return bool(value)

    def validate(self, value):
        if not isinstance(value, bool):
            return "Value {!r} is not a bool".format(value)

        return None


class Integer(ColumnType):
    """
    Represents an INTEGER type.

    An Integer primary key may be left empty on a new row; a surrogate key is assigned when the
    row is inserted.
    """
    generates_key = True

    def sql(self):
        return "INTEGER"

    def encode(self, value):
        number = int(value)
        # never round a value into a different key or bound
        if number != value:
            raise UsageError("Value {!r} is not an integer".format(value))

        return str(number)

    async def decode(self, value):
        return int(value)

    def validate(self, value):
        # bool is an int subclass, but True is not a sensible integer value
        if not isinstance(value, int) or isinstance(value, bool):
            return "Value {!r} is not an int".format(value)

        return None
