"""
Lookup operators, and the :class:`.Q` expressions built from them.

A lookup is a ``field[__operator]`` key with a value, e.g. ``name__contains="Doe"``. Lookups are
translated into a predicate *template*: a SQL fragment where every column reference is a
``§{path}`` token and every value is a ``${path}`` token, plus the list of values in the order
their tokens appear. The template is bound against a model by the :class:`.QuerySet` it is
merged into.
"""
import collections
import functools
import typing

#: The separator between the parts of a lookup.
LOOKUP_SEP = "__"


def column_token(path: str) -> str:
    return "§{" + path + "}"


def value_token(path: str) -> str:
    return "${" + path + "}"


class LookupOperator(object):
    """
    The base operator class.

    To customize the operator provided, set the value of ``template`` in the class body; the
    ``{col}`` and ``{val}`` fields are replaced with the column and value tokens.
    """
    template = None  # type: str

    @classmethod
    def render(cls, path: str) -> str:
        """
        Renders the template fragment for a lookup on ``path``.
        """
        return cls.template.format(col=column_token(path), val=value_token(path))


class Exact(LookupOperator):
    """
    Represents a case-sensitive equality operator.
    """
    template = "{col} = {val} COLLATE BINARY"


class IExact(LookupOperator):
    """
    Represents a case-insensitive equality operator.
    """
    template = "{col} = {val} COLLATE NOCASE"


class Contains(LookupOperator):
    """
    Represents a case-sensitive pattern match.
    """
    template = "{col} LIKE '%{val}%'"


class IContains(LookupOperator):
    """
    Represents a case-insensitive pattern match. This lowers both sides, as the dialect has no
    ILIKE.
    """
    template = "LOWER({col}) LIKE LOWER('%{val}%')"


class In(LookupOperator):
    """
    Represents a set membership operator. The value must be an iterable.
    """
    template = "{col} IN ({val})"


class Gt(LookupOperator):
    """
    Represents a more than operator.
    """
    template = "{col} > {val}"


class Gte(LookupOperator):
    """
    Represents a more than or equals to operator.
    """
    template = "{col} >= {val}"


class Lt(LookupOperator):
    """
    Represents a less than operator.
    """
    template = "{col} < {val}"


class Lte(LookupOperator):
    """
    Represents a less than or equals to operator.
    """
    template = "{col} <= {val}"


#: The operators usable as a lookup suffix.
OPERATORS = {
    "exact": Exact,
    "iexact": IExact,
    "contains": Contains,
    "icontains": IContains,
    "in": In,
    "gt": Gt,
    "gte": Gte,
    "lt": Lt,
    "lte": Lte,
}


def split_lookup(key: str) -> typing.Tuple[str, typing.Type[LookupOperator]]:
    """
    Splits a lookup key into its field path and operator.

    If the last part of the key is not an operator, it's part of the path and the operator is
    ``exact``.

    .. code-block:: python3

        split_lookup("name__icontains")  # ("name", IContains)
        split_lookup("author__name")     # ("author__name", Exact)

    """
    path, sep, op_name = key.rpartition(LOOKUP_SEP)
    if sep and path and op_name in OPERATORS:
        return path, OPERATORS[op_name]

    return key, Exact


def translate_lookups(lookups: typing.Mapping[str, typing.Any]) \
        -> typing.Tuple[str, typing.List[typing.Any]]:
    """
    Translates a mapping of lookups into a template and its values.

    Each lookup becomes one clause; clauses are joined with AND.

    :param lookups: The lookups to translate.
    :return: A tuple of (template, values).
    """
    clauses = []
    values = []
    for key, value in lookups.items():
        path, operator = split_lookup(key)
        clauses.append("({})".format(operator.render(path)))
        values.append(value)

    return " AND ".join(clauses), values


def requires_q(func):
    """
    A decorator that marks a magic method as requiring another :class:`.Q`.

    :param func: The function to decorate.
    :return: A function that returns NotImplemented when the class required isn't specified.
    """

    @functools.wraps(func)
    def inner(self, other: 'Q'):
        if not isinstance(other, Q):
            return NotImplemented

        return func(self, other)

    return inner


class Q(object):
    """
    A standalone predicate that can be combined with other predicates, and passed to
    :meth:`.QuerySet.filter` or :meth:`.QuerySet.exclude`.

    .. code-block:: python3

        q = Q(name="A. Doe") | Q(name__contains="B")
        books = await Book.objects.filter(~Q(title="X") & Q(author__name="A. Doe")).all()

    Values are kept in the order their tokens appear in the template.
    """

    def __init__(self, *mappings: typing.Mapping[str, typing.Any], **lookups):
        """
        :param mappings: Mappings of lookups.
        :param lookups: Lookups, as keyword arguments.
        """
        merged = collections.OrderedDict()
        for mapping in mappings:
            merged.update(mapping)
        merged.update(lookups)

        #: The template of this predicate, and the values for its value tokens.
        self.template, self.values = translate_lookups(merged)

    @classmethod
    def from_template(cls, template: str, values: typing.Iterable[typing.Any]) -> 'Q':
        """
        Creates a Q from an already-translated template.
        """
        obb = cls()
        obb.template = template
        obb.values = list(values)
        return obb

    def __repr__(self):
        return "<Q template={!r} values={!r}>".format(self.template, self.values)

    def __bool__(self):
        return bool(self.template)

    def _combine(self, other: 'Q', operator: str) -> 'Q':
        if not other:
            return Q.from_template(self.template, self.values)
        if not self:
            return Q.from_template(other.template, other.values)

        template = "({}) {} ({})".format(self.template, operator, other.template)
        return Q.from_template(template, self.values + other.values)

    @requires_q
    def and_(self, other: 'Q') -> 'Q':
        """
        :return: A new Q matching rows matched by both this and ``other``.
        """
        return self._combine(other, "AND")

    @requires_q
    def or_(self, other: 'Q') -> 'Q':
        """
        :return: A new Q matching rows matched by either this or ``other``.
        """
        return self._combine(other, "OR")

    def negate(self) -> 'Q':
        """
        :return: A new Q matching the rows this doesn't.
        """
        if not self:
            return Q()

        return Q.from_template("NOT ({})".format(self.template), self.values)

    __and__ = and_
    __or__ = or_
    __invert__ = negate
