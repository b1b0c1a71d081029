import enum
import functools
import logging
import typing
import warnings

from asyncstorm import db as md_db
from asyncstorm.backends.base import BaseResultSet, BaseTransaction

logger = logging.getLogger(__name__)


class SessionState(enum.Enum):
    NOT_READY = 0
    READY = 1
    CLOSED = 2


# decorators
def enforce_open(func):
    @functools.wraps(func)
    def wrapper(self, *args, **kwargs):
        if self._state is not SessionState.READY:
            raise RuntimeError("Session is not ready or closed")
        else:
            return func(self, *args, **kwargs)

    return wrapper


class Session(object):
    """
    Sessions are a single atomic unit of work against the database. Every statement executed
    inside a session is committed together, or rolled back together.

    Sessions are bound to a :class:`.DatabaseInterface` instance which they use to get a
    transaction and execute statements in.

    .. code-block:: python3

        async with db.get_session() as sess:
            await sess.execute('UPDATE "author" SET "name"=\\'x\\' WHERE "id"=1')
            row = await sess.fetch('SELECT * FROM "author" WHERE "id"=1')

    .. note::
        The sqlite3 connector runs one session at a time; do not open a session while another
        one is still open in the same task.
    """

    def __init__(self, bind: 'md_db.DatabaseInterface'):
        """
        :param bind: The :class:`.DatabaseInterface` instance we are bound to.
        """
        self.bind = bind

        #: The current state for the session.
        self._state = SessionState.NOT_READY

        #: The current :class:`.BaseTransaction` this Session is associated with.
        self.transaction = None  # type: BaseTransaction

    async def __aenter__(self) -> 'Session':
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        try:
            if exc_type is None:
                await self.commit()
            else:
                await self.rollback()
        finally:
            await self.close()

        return False

    def __del__(self):
        if self._state == SessionState.READY:
            warnings.warn("Session was destroyed without being closed!", stacklevel=2)

    async def start(self) -> 'Session':
        """
        Starts the session, acquiring a transaction which will be used to modify the DB.

        .. note::
            When using ``async with``, this is automatically called.
        """
        if self._state is not SessionState.NOT_READY:
            raise RuntimeError("Session must not be ready or closed")

        logger.debug("Acquiring new transaction, and beginning")
        self.transaction = self.bind.get_transaction()
        await self.transaction.begin()

        self._state = SessionState.READY
        return self

    @enforce_open
    async def commit(self):
        """
        Commits the current session.

        This will **not** close the session; it can be re-used after a commit.
        """
        logger.debug("Committing transaction")
        await self.transaction.commit()
        return self

    @enforce_open
    async def rollback(self):
        """
        Rolls the current session back.
        """
        logger.debug("Rolling back transaction")
        await self.transaction.rollback()
        return self

    @enforce_open
    async def close(self):
        """
        Closes the current session.

        .. warning::

            This will **NOT COMMIT ANY DATA**. Old data will die.
        """
        await self.transaction.close()
        self._state = SessionState.CLOSED
        self.transaction = None

    @enforce_open
    async def execute(self, sql: str, params: typing.Union[typing.Mapping[str, typing.Any],
                                                           typing.Iterable[typing.Any]] = None):
        """
        Executes SQL inside the current session, discarding any rows.

        :param sql: The SQL to execute.
        :param params: The parameters to use inside the query.
        """
        return await self.transaction.execute(sql, params)

    @enforce_open
    async def cursor(self, sql: str, params: typing.Union[typing.Mapping[str, typing.Any],
                                                          typing.Iterable[typing.Any]] = None) \
            -> BaseResultSet:
        """
        Executes SQL inside the current session, and returns a new :class:`.BaseResultSet`.

        :param sql: The SQL to execute.
        :param params: The parameters to use inside the query.
        """
        return await self.transaction.cursor(sql, params)

    @enforce_open
    async def fetch(self, sql: str, params=None):
        """
        Fetches a single row.
        """
        cur = await self.transaction.cursor(sql, params)
        async with cur:
            return await cur.fetch_row()

    @enforce_open
    async def fetch_all(self, sql: str, params=None) -> list:
        """
        Fetches every row a statement produces.
        """
        cur = await self.transaction.cursor(sql, params)
        async with cur:
            return await cur.fetch_all()
