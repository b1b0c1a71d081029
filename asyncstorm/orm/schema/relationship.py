"""
Relationship helpers.
"""
import typing

from asyncstorm.exc import SchemaError, UsageError
from asyncstorm.orm import inspection as md_inspection, related as md_related
from asyncstorm.orm.schema import column as md_column, model as md_model, types as md_types


def _resolve_model(target, metadata: 'md_model.ModelMetadata'):
    if not isinstance(target, str):
        return target

    model = metadata.get_model(target)
    if model is None:
        raise SchemaError("No such model '{}' exists".format(target))

    return model


class RelatedCollectionMixin(object):
    """
    A mixin for the relation objects that produce a collection of rows for a row: many to many
    fields, and the reverse side of relations.

    The collection lists rows of :attr:`.model`. ``foreign_key`` is the column that holds the
    owning row's primary key; if ``through`` is set, it is a column on the join model, and
    ``join_key`` is the join model's column holding the listed row's primary key.
    """

    #: The model of the rows listed.
    model = None

    #: The join model, for many to many relations.
    through = None

    #: The column holding the owner's primary key.
    foreign_key = None  # type: md_column.Column

    #: The join model's column holding the listed row's primary key.
    join_key = None  # type: md_column.Column

    @property
    def is_many_to_many(self) -> bool:
        return self.through is not None

    def get_placeholder(self, owner_model, initial: typing.Iterable = None) \
            -> 'md_related.RelatedPlaceholder':
        """
        Gets a placeholder for a row that has not been saved yet.
        """
        return md_related.RelatedPlaceholder(self.model, owner_model, self.foreign_key,
                                             through=self.through, join_key=self.join_key,
                                             initial=initial)

    def get_manager(self, owner_model, owner_pk) -> 'md_related.RelatedManager':
        """
        Gets the manager for the rows related to a saved row.
        """
        return md_related.RelatedManager(self.model, owner_model, owner_pk, self.foreign_key,
                                         through=self.through, join_key=self.join_key)

    def make_proxy(self, row, initial: typing.Iterable = None):
        """
        Makes the collection proxy for a row: a placeholder if the row is new, otherwise a
        manager scoped to its primary key.
        """
        if md_inspection.is_new(row):
            return self.get_placeholder(type(row), initial)

        return self.get_manager(type(row), row.primary_key)


class ForeignKey(md_types.ColumnType):
    """
    Represents a to-one relation to another model. The column stores the primary key of the
    referenced row.

    .. code-block:: python3

        class Book(Model):
            title = Column(String(255))
            author = Column(ForeignKey("Author"), related_name="books")

    On a row, the value is a :class:`.SingleRelationship`, which loads the referenced row
    lazily:

    .. code-block:: python3

        book = await Book.objects.get(title="X")
        author = await book.author

    """
    is_foreign_key = True

    def __init__(self, to: 'typing.Union[str, typing.Type[md_model.Model]]'):
        """
        :param to: Either the referenced model class, or its class or table name.
        """
        super().__init__()
        self._to = to

        #: The referenced model. Resolved when the models are set up.
        self.model = None if isinstance(to, str) else to

    def __repr__(self):
        return "<ForeignKey to={}>".format(getattr(self.model, "__name__", self._to))

    @property
    def foreign_column(self) -> 'md_column.Column':
        """
        :return: The primary key :class:`.Column` of the referenced model.
        """
        return self.model.primary_key

    def resolve(self, metadata: 'md_model.ModelMetadata'):
        """
        Resolves the referenced model.
        """
        if self.model is None:
            self.model = _resolve_model(self._to, metadata)

    def sql(self):
        return self.foreign_column.type.sql()

    def default_db_column(self, name: str):
        return "{}_id".format(name)

    def encode(self, value):
        if isinstance(value, md_related.SingleRelationship):
            pk = value.pk
            column = value.model.primary_key
        elif isinstance(value, md_model.Model):
            pk = value.primary_key
            column = type(value).primary_key
        else:
            pk = value
            column = self.foreign_column

        if pk is None:
            return "NULL"

        return column.encode(pk)

    async def decode(self, value):
        pk = await self.foreign_column.decode(value)
        return md_related.SingleRelationship(self.model, pk)

    def validate(self, value):
        if not isinstance(value, md_related.SingleRelationship):
            return "Value {!r} is not a related object".format(value)

        # a row without a key would be stored as NULL
        if not self.column.nullable and value.pk is None:
            return "Related row has not been saved"

        return None

    def on_set(self, row, value):
        if isinstance(value, md_model.Model):
            return md_related.SingleRelationship(type(value), value.primary_key, cached=value)

        return value


class ManyToMany(RelatedCollectionMixin, md_types.ColumnType):
    """
    Represents a many to many relation to another model, stored in a join model.

    .. code-block:: python3

        class Book(Model):
            tags = Column(ManyToMany("Tag"))

    If no ``through`` model is passed, one is created with a foreign key to each side, named after
    the two tables (``from_<table>`` and ``to_<table>`` if both sides are the same model).

    On a row, the value is a :class:`.RelatedManager`, or a :class:`.RelatedPlaceholder` while the
    row has not been saved yet.
    """

    def __init__(self, to: 'typing.Union[str, typing.Type[md_model.Model]]',
                 through: 'typing.Union[str, typing.Type[md_model.Model]]' = None):
        """
        :param to: Either the referenced model class, or its class or table name.
        :param through: The join model, or its class or table name.
        """
        super().__init__()
        self._to = to
        self._through = through

        self.model = None if isinstance(to, str) else to

    def __repr__(self):
        return "<ManyToMany to={}>".format(getattr(self.model, "__name__", self._to))

    def resolve(self, metadata: 'md_model.ModelMetadata'):
        """
        Resolves the referenced model and the join model, creating the join model if needed.
        """
        if self.model is None:
            self.model = _resolve_model(self._to, metadata)

        if self.through is not None:
            return

        owner = self.column.model
        if self._through is None:
            through = metadata.create_join_model(owner, self.column.name, self.model)
        else:
            through = _resolve_model(self._through, metadata)

        # scan the join model for the keys pointing back at either side
        keys = [col for col in through.iter_columns()
                if isinstance(col.type, ForeignKey) and col.type.model is not None]
        to_owner = [col for col in keys if col.type.model is owner]
        to_target = [col for col in keys if col.type.model is self.model]
        if owner is self.model:
            # both keys point at the same model; the first is ours
            to_target = to_target[1:]

        if not to_owner or not to_target:
            raise SchemaError("Join model {} needs a foreign key to both {} and {}"
                              .format(through.__name__, owner.__name__, self.model.__name__))

        self.foreign_key = to_owner[0]
        self.join_key = to_target[0]
        self.through = through

    def sql(self):
        # stored in the join model
        return None

    def default_db_column(self, name: str):
        return None

    def encode(self, value):
        # many to many values are written to the join model, never inline
        return None

    async def decode(self, value):
        return self.get_placeholder(self.column.model)

    def on_set(self, row, value):
        if isinstance(value, (md_related.RelatedPlaceholder, md_related.RelatedManager)):
            return value

        if value is None:
            value = []

        if isinstance(value, (list, tuple, set)):
            if not md_inspection.is_new(row):
                raise UsageError("Use .set() to change the rows of '{}' on a saved row"
                                 .format(self.column.name))

            return self.get_placeholder(type(row), value)

        raise UsageError("Value {!r} cannot be stored in many to many field '{}'"
                         .format(value, self.column.name))


class ReverseRelation(RelatedCollectionMixin):
    """
    The reverse side of a :class:`.ForeignKey` or :class:`.ManyToMany`, added to the referenced
    model under the column's ``related_name``.

    .. code-block:: python3

        author = await Author.objects.get(name="A. Doe")
        books = await author.books.all()

    """

    def __init__(self, name: str, source: 'md_column.Column'):
        """
        :param name: The name of this relation on the referenced model.
        :param source: The :class:`.Column` this relation reverses.
        """
        #: The name of this relation.
        self.name = name

        #: The column this relation reverses.
        self.source = source

        self.model = source.model
        if isinstance(source.type, ManyToMany):
            self.through = source.type.through
            self.foreign_key = source.type.join_key
            self.join_key = source.type.foreign_key
        else:
            self.foreign_key = source

    def __repr__(self):
        return "<ReverseRelation name={} source={!r}>".format(self.name, self.source)
