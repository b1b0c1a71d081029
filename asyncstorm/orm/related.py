"""
Proxies for related rows: the lazy to-one reference, the scoped collection manager, and the
placeholder used by rows that have not been saved yet.
"""
import logging
import typing

from asyncstorm.exc import UsageError
from asyncstorm.orm import query as md_query

logger = logging.getLogger(__name__)


class SingleRelationship(object):
    """
    A lazy reference to a single row of another model, as stored in a foreign key.

    The referenced row is only fetched when it is asked for, and only once:

    .. code-block:: python3

        author = await book.author.get()
        # or, equivalently
        author = await book.author

    """

    def __init__(self, model, pk: typing.Any, cached=None):
        """
        :param model: The referenced model class.
        :param pk: The primary key of the referenced row.
        :param cached: The referenced row, if it is already known.
        """
        self.model = model
        self._pk = pk
        self._cached = cached

    def __repr__(self):
        return "<SingleRelationship model={} pk={!r}>".format(self.model.__name__, self.pk)

    def __eq__(self, other):
        if not isinstance(other, SingleRelationship):
            return NotImplemented

        return self.model is other.model and self.pk == other.pk

    def __hash__(self):
        return hash((self.model, self.pk))

    def __await__(self):
        return self.get().__await__()

    @property
    def pk(self) -> typing.Any:
        """
        :return: The primary key of the referenced row.
        """
        # a cached row may have been given a key since it was assigned
        if self._cached is not None:
            return self._cached.primary_key

        return self._pk

    @property
    def loaded(self) -> bool:
        """
        :return: If the referenced row has been fetched (or was given).
        """
        return self._cached is not None

    async def get(self):
        """
        Gets the referenced row, fetching it the first time.

        :raises DoesNotExist: If the referenced row doesn't exist.
        """
        if self._cached is None:
            self._cached = await self.model.objects.get(pk=self._pk)

        return self._cached

    def set(self, row):
        """
        Replaces the referenced row. Nothing is written until the owning row is saved.
        """
        self._cached = row
        self._pk = row.primary_key


class RelatedManager(md_query.QuerySet):
    """
    A :class:`.QuerySet` over the rows related to one row: the rows of a reverse foreign key, or
    the rows linked through a many to many join model.

    .. code-block:: python3

        tags = await book.tags.all()
        await book.tags.set([tag_1, tag_2])
        await book.tags.clear()

    Only many to many managers can be changed; reverse foreign key managers are read only.
    """

    def __init__(self, model, owner_model, owner_pk: typing.Any, foreign_key,
                 through=None, join_key=None):
        """
        :param model: The model of the rows listed.
        :param owner_model: The model of the owning row.
        :param owner_pk: The primary key of the owning row.
        :param foreign_key: The :class:`.Column` holding the owner's primary key.
        :param through: The join model, for many to many relations.
        :param join_key: The join model's :class:`.Column` holding the listed row's primary key.
        """
        super().__init__(model)
        self.owner_model = owner_model
        self.owner_pk = owner_pk
        self.foreign_key = foreign_key
        self.through = through
        self.join_key = join_key

        scope = "{} = {}".format(foreign_key.quoted_fullname, self._encoded_owner_pk)
        if through is not None:
            scope = "{} AND {} = {}".format(scope, join_key.quoted_fullname,
                                            model.primary_key.quoted_fullname)
            self._additional_tables.append(through.__tablename__)

        self._where = "({})".format(scope)

    def __repr__(self):
        return "<RelatedManager model={} owner={} pk={!r}>".format(self.model.__name__,
                                                                  self.owner_model.__name__,
                                                                  self.owner_pk)

    @property
    def _encoded_owner_pk(self) -> str:
        return self.owner_model.primary_key.encode(self.owner_pk)

    def _require_many_to_many(self, method: str):
        if self.through is None:
            raise UsageError("{}() can only be used on a many to many relation".format(method))

    def set(self, rows: typing.Iterable) -> typing.Awaitable[None]:
        """
        Replaces the related rows. The join rows are cleared, then one join row is inserted per
        related row, in order.

        :param rows: The rows to relate. They must all have a primary key.
        """
        self._require_many_to_many("set")
        rows = list(rows)
        for row in rows:
            if row.primary_key is None:
                raise UsageError("Related row {!r} must be saved first".format(row))

        return self._set(rows)

    async def _set(self, rows: list):
        self._cache = None
        await self._clear()

        for row in rows:
            sql = "INSERT INTO {} ({}, {}) VALUES ({}, {})".format(
                self.through.__quoted_name__, self.foreign_key.quoted_name,
                self.join_key.quoted_name, self._encoded_owner_pk,
                self.join_key.encode(row.primary_key)
            )
            await self.bind.execute(sql)

        logger.debug("Linked {} rows to {} {!r}".format(len(rows), self.owner_model.__name__,
                                                         self.owner_pk))
        self._cache = rows

    def clear(self) -> typing.Awaitable[None]:
        """
        Removes every join row of the owning row.
        """
        self._require_many_to_many("clear")
        return self._clear()

    async def _clear(self):
        sql = "DELETE FROM {} WHERE {} = {}".format(self.through.__quoted_name__,
                                                    self.foreign_key.quoted_name,
                                                    self._encoded_owner_pk)
        await self.bind.execute(sql)
        self._cache = []


class RelatedPlaceholder(object):
    """
    Stands in for a :class:`.RelatedManager` on a row that has not been saved yet. It never runs
    any SQL; it only remembers the rows the relation should hold.

    When the row is first saved, the placeholder is replaced by a real manager and its rows are
    written with :meth:`.RelatedManager.set`.
    """

    def __init__(self, model, owner_model, foreign_key, through=None, join_key=None,
                 initial: typing.Iterable = None):
        self.model = model
        self.owner_model = owner_model
        self.foreign_key = foreign_key
        self.through = through
        self.join_key = join_key

        self._cache = list(initial) if initial is not None else []

    def __repr__(self):
        return "<RelatedPlaceholder model={} pending={}>".format(self.model.__name__,
                                                                len(self._cache))

    async def all(self) -> list:
        """
        :return: The pending rows.
        """
        return list(self._cache)

    async def set(self, rows: typing.Iterable):
        """
        Replaces the pending rows.
        """
        if self.through is None:
            raise UsageError("set() can only be used on a many to many relation")

        self._cache = list(rows)

    def check_pending(self):
        """
        Checks that every pending row can be linked, i.e. has a primary key.

        :raises UsageError: If a pending row has not been saved.
        """
        for row in self._cache:
            if row.primary_key is None:
                raise UsageError("Related row {!r} must be saved first".format(row))

    def get_manager(self, owner_pk: typing.Any) -> RelatedManager:
        """
        :return: The :class:`.RelatedManager` that replaces this placeholder once the owning row
            has a primary key.
        """
        return RelatedManager(self.model, self.owner_model, owner_pk, self.foreign_key,
                              through=self.through, join_key=self.join_key)

    async def save(self, manager: RelatedManager):
        """
        Writes the pending rows through the real manager.
        """
        if self.through is None:
            # reverse foreign keys are written by the rows that hold the key
            return

        await manager.set(self._cache)
