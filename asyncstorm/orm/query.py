"""
Classes for query objects.
"""
import asyncio
import collections
import collections.abc
import logging
import re
import typing

from asyncstorm.exc import DoesNotExist, MultipleObjectsReturned, NoSuchFieldError, UsageError
from asyncstorm.orm import operators as md_operators
from asyncstorm.orm.schema import column as md_column
from asyncstorm.orm.schema.decorators import enforce_bound

logger = logging.getLogger(__name__)

# matches the column (§) and value ($) tokens of a template
_TOKEN_RE = re.compile(r"([$§])\{([^}]*)\}")

# a join: (left model, foreign key column on the left model, right model)
Join = typing.Tuple[typing.Any, 'md_column.Column', typing.Any]


class QuerySet(object):
    """
    Represents a lazily evaluated, filtered and ordered collection of the rows of a model.

    QuerySets are never changed in place; :meth:`.QuerySet.filter`, :meth:`.QuerySet.exclude` and
    :meth:`.QuerySet.order_by` return a new QuerySet.

    .. code-block:: python3

        qs = Book.objects.filter(author__name="A. Doe").order_by("-title")
        books = await qs.all()

    The rows are fetched by the first call to :meth:`.QuerySet.all`; later calls return the same
    rows without querying again.
    """

    def __init__(self, model):
        """
        :param model: The model class this QuerySet lists.
        """
        #: The model class this QuerySet lists.
        self.model = model

        #: The bound WHERE predicate.
        self._where = ""

        #: The join chain.
        self._joins = []  # type: typing.List[Join]

        #: The extra clauses (ORDER BY).
        self._extra = ""

        #: Tables joined implicitly; their conditions live in the WHERE predicate.
        self._additional_tables = []  # type: typing.List[str]

        #: The rows this QuerySet fetched.
        self._cache = None  # type: typing.List[typing.Any]

    def __repr__(self):
        return "<QuerySet model={} sql={!r}>".format(self.model.__name__, self.generate_sql())

    @property
    def bind(self):
        """
        :return: The :class:`.DatabaseInterface` the model is bound to.
        """
        return self.model.metadata.bind

    def _clone(self) -> 'QuerySet':
        qs = QuerySet(self.model)
        qs._where = self._where
        qs._joins = list(self._joins)
        qs._extra = self._extra
        qs._additional_tables = list(self._additional_tables)
        return qs

    # query building
    def _resolve_path(self, path: str) -> 'md_column.Column':
        """
        Resolves a lookup path to its column, adding the joins it needs.

        :param path: A field name, ``pk``, or foreign key names and a field name joined with
            ``__``.
        """
        model = self.model
        segments = [path] if model.get_column(path) is not None else \
            path.split(md_operators.LOOKUP_SEP)

        for idx, segment in enumerate(segments):
            if segment == "pk":
                column = model.primary_key
            else:
                column = model.get_column(segment)

            if column is None:
                raise NoSuchFieldError("{} has no field named '{}'".format(model.__name__,
                                                                           segment))

            if not column.is_stored:
                raise UsageError("Lookups can't use the many to many field '{}'"
                                 .format(column.name))

            if idx == len(segments) - 1:
                return column

            if not column.type.is_foreign_key:
                raise NoSuchFieldError("{}.{} is not a relation and has no field '{}'"
                                       .format(model.__name__, segment, segments[idx + 1]))

            next_model = column.type.model
            join = (model, column, next_model)
            if join not in self._joins:
                self._joins.append(join)
            model = next_model

    def _encode(self, column: 'md_column.Column', value: typing.Any) -> str:
        if isinstance(value, (list, tuple, set, frozenset)):
            return ", ".join(column.encode(item) for item in value)

        return column.encode(value)

    def _bind(self, template: str, values: typing.Iterable[typing.Any]) -> str:
        """
        Binds a template to this QuerySet's model, replacing every token.
        """
        values = iter(values)

        def replace(match):
            kind, path = match.groups()
            column = self._resolve_path(path)
            if kind == "§":
                return column.quoted_fullname

            try:
                value = next(values)
            except StopIteration:
                raise UsageError("Not enough values for template {!r}".format(template)) from None

            encoded = self._encode(column, value)
            # '%' + 'value' + '%' collapses to '%value%'
            string = match.string
            if string[match.start() - 2:match.start()] == "'%" \
                    and string[match.end():match.end() + 2] == "%'" \
                    and len(encoded) >= 2 and encoded[0] == encoded[-1] == "'":
                encoded = encoded[1:-1]

            return encoded

        return _TOKEN_RE.sub(replace, template)

    def _to_q(self, args: tuple, lookups: dict) -> 'md_operators.Q':
        q = md_operators.Q(**lookups)
        for arg in args:
            if isinstance(arg, md_operators.Q):
                q = q & arg
            elif isinstance(arg, collections.abc.Mapping):
                q = q & md_operators.Q(arg)
            else:
                raise UsageError("Expected a Q or a mapping of lookups, got {!r}".format(arg))

        if not q:
            raise UsageError("At least one lookup is required")

        return q

    def _merge(self, clause: str) -> 'QuerySet':
        if self._where:
            self._where = "{} AND ({})".format(self._where, clause)
        else:
            self._where = "({})".format(clause)

        return self

    def filter(self, *args, **lookups) -> 'QuerySet':
        """
        Returns a new QuerySet limited to the rows matching the lookups.

        .. code-block:: python3

            Book.objects.filter(title__contains="Python", author__name="A. Doe")
            Book.objects.filter(Q(title="X") | Q(title="Y"))

        :param args: :class:`.Q` objects, or mappings of lookups.
        :param lookups: Lookups, as keyword arguments.
        """
        q = self._to_q(args, lookups)
        qs = self._clone()
        return qs._merge(qs._bind(q.template, q.values))

    def exclude(self, *args, **lookups) -> 'QuerySet':
        """
        Returns a new QuerySet without the rows matching the lookups.

        Only the lookups passed here are negated; earlier filters still apply.
        """
        q = self._to_q(args, lookups)
        qs = self._clone()
        return qs._merge("NOT ({})".format(qs._bind(q.template, q.values)))

    def order_by(self, *fields: str) -> 'QuerySet':
        """
        Returns a new QuerySet ordered by the given fields, replacing any previous ordering.

        .. code-block:: python3

            # oldest first, then alphabetically
            Person.objects.order_by("-age", "name")

        :param fields: Field paths. A leading ``-`` sorts that field descending.
        """
        qs = self._clone()
        orders = []
        for field in fields:
            if field.startswith("-"):
                field, direction = field[1:], "DESC"
            else:
                direction = "ASC"

            column = qs._resolve_path(field)
            orders.append("{} {}".format(column.quoted_fullname, direction))

        qs._extra = "ORDER BY {}".format(", ".join(orders)) if orders else ""
        return qs

    # sql generation
    def _build_from(self) -> str:
        from_ = [self.model.__quoted_name__]
        for left, column, right in self._joins:
            from_.append("JOIN {} ON ({} = {})".format(right.__quoted_name__,
                                                       column.quoted_fullname,
                                                       right.primary_key.quoted_fullname))

        sql = " ".join(from_)
        if self._additional_tables:
            sql += "," + ",".join('"{}"'.format(table) for table in self._additional_tables)

        return sql

    def generate_sql(self) -> str:
        """
        Generates the SELECT statement for this QuerySet.
        """
        sql = "SELECT {}.* FROM {}".format(self.model.__quoted_name__, self._build_from())
        if self._where:
            sql += " WHERE {}".format(self._where)

        if self._extra:
            sql += " {}".format(self._extra)

        return sql

    def generate_delete_sql(self) -> str:
        """
        Generates the DELETE statement for this QuerySet.
        """
        table = self.model.__quoted_name__
        if not self._joins and not self._additional_tables:
            sql = "DELETE FROM {}".format(table)
            if self._where:
                sql += " WHERE {}".format(self._where)
            return sql

        if self.bind is not None and self.bind.dialect.has_join_delete:
            sql = "DELETE FROM {}".format(self._build_from())
            if self._where:
                sql += " WHERE {}".format(self._where)
            return sql

        pk = self.model.primary_key.quoted_fullname
        sql = "DELETE FROM {0} WHERE {1} IN (SELECT {1} FROM {2}".format(table, pk,
                                                                        self._build_from())
        if self._where:
            sql += " WHERE {}".format(self._where)

        return sql + ")"

    # execution
    async def _materialize(self, row: typing.Mapping[str, typing.Any]):
        columns = list(self.model.iter_columns())
        decoded = await asyncio.gather(*(
            col.decode(row[col.db_column] if col.is_stored else None) for col in columns
        ))
        values = collections.OrderedDict(zip((col.name for col in columns), decoded))
        return self.model._internal_from_row(values, existed=True)

    @enforce_bound
    async def all(self) -> list:
        """
        Fetches the rows of this QuerySet.

        :return: A list of model instances.
        """
        if self._cache is None:
            rows = await self.bind.execute(self.generate_sql())
            self._cache = list(await asyncio.gather(*(self._materialize(row) for row in rows)))
            logger.debug("Materialized {} {} rows".format(len(self._cache), self.model.__name__))

        return list(self._cache)

    @enforce_bound
    async def get(self, *args, **lookups):
        """
        Gets the single row matching the lookups.

        .. code-block:: python3

            author = await Author.objects.get(pk=1)

        :raises DoesNotExist: If no row matched.
        :raises MultipleObjectsReturned: If more than one row matched.
        """
        qs = self.filter(*args, **lookups) if args or lookups else self
        rows = await qs.all()
        if not rows:
            raise DoesNotExist("{} matching query does not exist".format(self.model.__name__))

        if len(rows) > 1:
            raise MultipleObjectsReturned("get() returned {} {} rows"
                                          .format(len(rows), self.model.__name__))

        return rows[0]

    async def first(self):
        """
        :return: The first row of this QuerySet, or None if there are no rows.
        """
        rows = await self.all()
        if not rows:
            return None

        return rows[0]

    async def __aiter__(self):
        for row in await self.all():
            yield row

    @enforce_bound
    async def delete(self):
        """
        Deletes the rows of this QuerySet.
        """
        await self.bind.execute(self.generate_delete_sql())
        self._cache = []
