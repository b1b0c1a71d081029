"""
The base implementation of a backend. This provides some ABC classes.
"""
import collections.abc
import typing
from abc import abstractmethod
from collections import OrderedDict
from urllib.parse import ParseResult, parse_qs

from asyncstorm.meta import AsyncABC


class BaseDialect:
    """
    The base class for a SQL dialect describer.

    This class signifies what features the SQL dialect can use, and as such can be used to adjust
    statement generation for the engine being used.

    By default, all ``has_`` properties will default to False, so that none of them need be
    implemented.
    """

    @property
    def has_ilike(self) -> bool:
        """
        Returns True if this dialect has ILIKE.
        """
        return False

    @property
    def has_join_delete(self) -> bool:
        """
        Returns True if this dialect accepts joined tables in a DELETE statement.
        """
        return False

    @property
    def connect_statements(self) -> typing.Sequence[str]:
        """
        Statements run once on every new connection.
        """
        return ()


class BaseResultSet(collections.abc.AsyncIterator, AsyncABC):
    """
    The base class for a result set. This represents the results from a database query, as an async
    iterable.

    Children classes must implement:

        - :attr:`.BaseResultSet.keys`
        - :attr:`.BaseResultSet.fetch_row`
        - :attr:`.BaseResultSet.fetch_many`
        - :attr:`.BaseResultSet.fetch_all`
    """

    @property
    @abstractmethod
    def keys(self) -> typing.Iterable[str]:
        """
        :return: An iterable of keys that this query contained.
        """

    @abstractmethod
    async def fetch_row(self) -> typing.Mapping[str, typing.Any]:
        """
        Fetches the **next row** in this query.

        This should return None if the row could not be fetched.
        """

    @abstractmethod
    async def fetch_many(self, n: int) -> typing.List[typing.Mapping[str, typing.Any]]:
        """
        Fetches the **next N rows** in this query.

        :param n: The number of rows to fetch.
        """

    @abstractmethod
    async def fetch_all(self) -> typing.List[typing.Mapping[str, typing.Any]]:
        """
        Fetches every remaining row in this query.
        """

    @abstractmethod
    async def close(self):
        """
        Closes this result set.
        """

    async def __anext__(self):
        res = await self.fetch_row()
        if not res:
            raise StopAsyncIteration

        return res

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False


class BaseTransaction(AsyncABC):
    """
    The base class for a transaction. This is one atomic unit of work: statements run between a
    :meth:`.begin` and a :meth:`.commit` or :meth:`.rollback`.

    Children classes must implement:

        - :meth:`.BaseTransaction.begin`
        - :meth:`.BaseTransaction.rollback`
        - :meth:`.BaseTransaction.commit`
        - :meth:`.BaseTransaction.execute`
        - :meth:`.BaseTransaction.cursor`
        - :meth:`.BaseTransaction.close`

    This class takes one parameter in the constructor: the :class:`.BaseConnector` used to connect
    to the database.
    """

    def __init__(self, connector: 'BaseConnector'):
        self.connector = connector

    async def __aenter__(self) -> 'BaseTransaction':
        await self.begin()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        try:
            if exc_type is not None:
                await self.rollback()
                return False

            await self.commit()
            return False
        finally:
            await self.close()

    @abstractmethod
    async def begin(self):
        """
        Begins the transaction.
        """

    @abstractmethod
    async def rollback(self):
        """
        Rolls back the transaction.
        """

    @abstractmethod
    async def commit(self):
        """
        Commits the current transaction.
        """

    @abstractmethod
    async def execute(self, sql: str, params: typing.Union[typing.Mapping, typing.Iterable] = None):
        """
        Executes SQL in the current transaction.

        :param sql: The SQL statement to execute.
        :param params: Any parameters to pass to the query.
        """

    @abstractmethod
    async def close(self):
        """
        Called at the end of a transaction to cleanup.
        """

    @abstractmethod
    async def cursor(self, sql: str, params: typing.Union[typing.Mapping, typing.Iterable] = None) \
            -> 'BaseResultSet':
        """
        Executes SQL and returns a database cursor for the rows.

        :param sql: The SQL statement to execute.
        :param params: Any parameters to pass to the query.
        :return: The :class:`.BaseResultSet` returned from the query, if applicable.
        """


class BaseConnector(AsyncABC):
    """
    The base class for a connector. This should be used for all connector classes as the parent
    class.

    Children classes must implement:

        - :meth:`.BaseConnector.connect`
        - :meth:`.BaseConnector.close`
        - :meth:`.BaseConnector.get_transaction`
    """

    def __init__(self, dsn: ParseResult, *, dialect: BaseDialect = None):
        """
        :param dsn: The :class:`urllib.parse.ParseResult` created from parsing a DSN.
        :param dialect: The :class:`.BaseDialect` of the engine this connects to.
        """
        self.dialect = dialect or BaseDialect()

        self._parse_result = dsn
        self.dsn = dsn.geturl()
        self.host = dsn.hostname
        self.port = dsn.port
        self.username = dsn.username
        self.password = dsn.password
        self.db = dsn.path[1:]
        self.params = {k: v[0] for k, v in parse_qs(dsn.query).items()}

    @abstractmethod
    async def connect(self) -> 'BaseConnector':
        """
        Connects the current connector to the database. This is called automatically by the
        :class:`.DatabaseInterface`.

        :return: The original BaseConnector instance.
        """

    @abstractmethod
    async def close(self):
        """
        Closes the current Connector.
        """

    @abstractmethod
    def get_transaction(self) -> BaseTransaction:
        """
        Gets a new transaction object for this connection.

        :return: A new :class:`~.BaseTransaction` object attached to this connection.
        """


class DictRow(OrderedDict):
    """
    Represents a row returned from a base result set, in dict form.

    This class allows for accessing both via key and index.
    """
    def __getitem__(self, item):
        if isinstance(item, int):
            try:
                return list(self.values())[item]
            except IndexError:
                raise KeyError(item)

        return super().__getitem__(item)
