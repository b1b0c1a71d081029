import logging
import re
import typing

from cached_property import cached_property

from asyncstorm.orm.schema import types as md_types
from asyncstorm.sentinels import NO_DEFAULT

logger = logging.getLogger(__name__)


def _humanize(name: str) -> str:
    name = re.sub(r"([A-Z])", r" \1", name.replace("_", " ")).strip()
    # collapse the double space left by a hump after an underscore
    name = re.sub(r"\s+", " ", name)
    return name[:1].upper() + name[1:]


class Column(object):
    """
    Represents a field on a model, and the column that stores it.

    .. code-block:: python3

        class Author(Model):
            id = Column(Integer, primary_key=True)
            name = Column(String(50), nullable=False)

    The ``id`` column will mirror the ID of records in the table when fetching, etc. and can be set
    on a record when storing in a table.

    .. code-block:: python3

        author = await Author.objects.get(id=2)
        print(author.id)  # 2

    """

    def __init__(self, type_: 'typing.Union[md_types.ColumnType, typing.Type[md_types.ColumnType]]',
                 *,
                 primary_key: bool = False,
                 nullable: bool = True,
                 unique: bool = False,
                 default: typing.Any = NO_DEFAULT,
                 choices: typing.Iterable[typing.Tuple[typing.Any, str]] = None,
                 db_column: str = None,
                 verbose_name: str = None,
                 related_name: str = None):
        """
        :param type_:
            The :class:`.ColumnType` that represents the type of this column.

        :param primary_key:
            Is this column the model's Primary Key (the unique identifier that identifies each row)?
            A primary key is always unique and never nullable.

        :param nullable:
            Can this column be NULL?

        :param unique:
            Is this column unique?

        :param default:
            The client-side default for this column. If no value is provided when creating a row,
            this value is used; if it is callable, it is called to produce the value.

        :param choices:
            An iterable of ``(stored value, display label)`` pairs the value must be one of.

        :param db_column:
            The name of the storage column. Defaults to the field name (``<name>_id`` for foreign
            keys).

        :param verbose_name:
            A human readable name for this field.

        :param related_name:
            For relation types, the name of the reverse relation added to the referenced model.
            A name ending in ``+`` disables the reverse relation.
        """
        #: The name of the field.
        #: This is automatically set when set on a model.
        self.name = None  # type: str

        #: The model class this Column is associated with.
        self.model = None

        #: The :class:`.ColumnType` that represents the type of this column.
        self.type = type_  # type: md_types.ColumnType
        if not isinstance(self.type, md_types.ColumnType):
            # assume we need to create the "default" type
            self.type = self.type.create_default()  # type: md_types.ColumnType
        # update our own object on the column
        self.type.column = self

        #: If this Column is a primary key.
        self.primary_key = primary_key

        #: If this Column is nullable.
        self.nullable = nullable and not primary_key

        #: If this Column is unique.
        self.unique = unique or primary_key

        #: The default for this column.
        self.default = default

        #: The choices for this column, or None.
        self.choices = list(choices) if choices is not None else None

        #: The name of the reverse relation for relation types.
        self.related_name = related_name

        self._db_column = db_column
        self._verbose_name = verbose_name

    def __repr__(self):
        model = self.model.__name__ if self.model is not None else None
        return "<Column model={} name={} type={!r}>".format(model, self.name, self.type)

    def __set_name__(self, owner, name):
        """
        Called to update the model and the name of this Column.

        :param owner: The model class this Column is on.
        :param name: The str name of this field.
        """
        logger.debug("Column created with name {} on {}".format(name, owner))
        self.name = name
        self.model = owner

    @cached_property
    def db_column(self) -> typing.Optional[str]:
        """
        The name of the storage column, or None if this field isn't stored in its model's table
        (many to many fields).
        """
        if self._db_column is not None:
            return self._db_column

        return self.type.default_db_column(self.name)

    @cached_property
    def verbose_name(self) -> str:
        """
        The human readable name of this field.
        """
        if self._verbose_name is not None:
            return self._verbose_name

        return _humanize(self.name)

    @cached_property
    def quoted_name(self) -> str:
        """
        Gets the quoted name for this column.

        This returns the column name in "column" format.
        """
        return r'"{}"'.format(self.db_column)

    @cached_property
    def quoted_fullname(self) -> str:
        """
        Gets the full quoted name for this column.

        This returns the column name in "table"."column" format.
        """
        return r'"{}"."{}"'.format(self.model.__tablename__, self.db_column)

    @property
    def is_stored(self) -> bool:
        """
        :return: If this field has a column in its model's table.
        """
        return self.db_column is not None

    def get_default(self) -> typing.Any:
        """
        :return: The default value for this column, or None if there is no default.
        """
        if self.default is NO_DEFAULT:
            return None

        if callable(self.default):
            return self.default()

        return self.default

    def get_display(self, value: typing.Any) -> typing.Any:
        """
        Gets the display label of a value from this column's choices.

        :param value: The stored value.
        :return: The label, or the value itself if it isn't a known choice.
        """
        if self.choices is None:
            return value

        return dict(self.choices).get(value, value)

    def encode(self, value: typing.Any) -> str:
        """
        Encodes a value into a SQL literal.
        """
        if value is None:
            return "NULL"

        return self.type.encode(value)

    async def decode(self, value: typing.Any) -> typing.Any:
        """
        Decodes a stored value.
        """
        if value is None and self.is_stored:
            return None

        return await self.type.decode(value)

    def validate(self, value: typing.Any) -> typing.Optional[str]:
        """
        Validates a value for this column.

        :return: None if the value is valid, or a str describing why it isn't.
        """
        if value is None:
            if self.nullable:
                return None

            if self.primary_key and self.type.generates_key:
                # filled in by the surrogate key on insert
                return None

            return "Value cannot be null"

        if self.choices is not None and value not in [choice for choice, _ in self.choices]:
            return "Value {!r} is not a valid choice".format(value)

        return self.type.validate(value)
