"""
A backend using the aiosqlite driver.
"""
import asyncio
import sqlite3
import typing

import aiosqlite

from asyncstorm.backends.base import BaseConnector, BaseResultSet, BaseTransaction, DictRow
from asyncstorm.exc import IntegrityError, OperationalError, StorageError


def _translate_error(error: sqlite3.Error) -> StorageError:
    if isinstance(error, sqlite3.IntegrityError):
        return IntegrityError(str(error))

    return OperationalError(str(error))


class AiosqliteConnector(BaseConnector):
    """
    A connector powered by aiosqlite.

    The connector owns a single connection. Transactions take turns on it: a transaction holds
    the connector lock from :meth:`.AiosqliteTransaction.begin` until it is closed, so only one
    atomic unit runs at a time.
    """

    def __init__(self, parsed, *, dialect=None):
        super().__init__(parsed, dialect=dialect)

        #: The underlying aiosqlite connection.
        self.connection = None  # type: aiosqlite.Connection

        #: Serialises transactions on the connection.
        self.lock = asyncio.Lock()

    async def connect(self) -> 'AiosqliteConnector':
        """
        Opens the connection and runs the dialect's connection setup statements.
        """
        try:
            self.connection = await aiosqlite.connect(self.db or ":memory:", **self.params)
            for statement in self.dialect.connect_statements:
                await self.connection.execute(statement)
        except sqlite3.Error as e:
            raise _translate_error(e) from e

        return self

    async def close(self):
        """
        Closes this connector.
        """
        if self.connection is not None:
            await self.connection.close()
            self.connection = None

    def get_transaction(self) -> 'AiosqliteTransaction':
        return AiosqliteTransaction(self)


class AiosqliteTransaction(BaseTransaction):
    """
    Represents a sqlite3 transaction.
    """

    def __init__(self, connector: 'AiosqliteConnector'):
        super().__init__(connector)

        #: The connection for this transaction.
        self.connection = None  # type: aiosqlite.Connection

    async def begin(self):
        """
        Begins the current transaction, waiting for any other transaction to finish.
        """
        if self.connector.connection is None:
            raise OperationalError("The connector is not connected")

        await self.connector.lock.acquire()
        self.connection = self.connector.connection

    async def execute(self, sql: str, params: typing.Union[typing.Mapping, typing.Iterable] = None):
        """
        Executes SQL in the current transaction.
        """
        try:
            cursor = await self.connection.execute(sql, params)
            await cursor.close()
        except sqlite3.Error as e:
            raise _translate_error(e) from e

    async def commit(self):
        """
        Commits the current transaction.
        """
        try:
            await self.connection.commit()
        except sqlite3.Error as e:
            raise _translate_error(e) from e

    async def rollback(self):
        """
        Rolls back the current transaction.
        """
        try:
            await self.connection.rollback()
        except sqlite3.Error as e:
            raise _translate_error(e) from e

    async def cursor(self, sql: str, params: typing.Union[typing.Mapping, typing.Iterable] = None) \
            -> 'AiosqliteResultSet':
        """
        Gets a cursor for the specified SQL.
        """
        try:
            cur = await self.connection.execute(sql, params)
        except sqlite3.Error as e:
            raise _translate_error(e) from e

        return AiosqliteResultSet(cur)

    async def close(self):
        """
        Closes the current transaction, handing the connection to the next one.
        """
        if self.connection is None:
            return

        self.connection = None
        self.connector.lock.release()


class AiosqliteResultSet(BaseResultSet):
    """
    A result set for a sqlite3 database.
    """

    def __init__(self, cursor: aiosqlite.Cursor):
        self.cursor = cursor

        self._keys = [d[0] for d in cursor.description or ()]

    @property
    def keys(self) -> typing.Iterable[str]:
        return self._keys

    def _to_row(self, row) -> DictRow:
        return DictRow(zip(self._keys, row))

    async def close(self):
        await self.cursor.close()

    async def fetch_many(self, n: int) -> typing.List[typing.Mapping[str, typing.Any]]:
        """
        Fetches many rows.
        """
        rows = await self.cursor.fetchmany(size=n)
        return [self._to_row(r) for r in rows if r is not None]

    async def fetch_all(self) -> typing.List[typing.Mapping[str, typing.Any]]:
        """
        Fetches all remaining rows.
        """
        rows = await self.cursor.fetchall()
        return [self._to_row(r) for r in rows]

    async def fetch_row(self) -> typing.Mapping[str, typing.Any]:
        """
        Fetches one row.
        """
        row = await self.cursor.fetchone()
        return self._to_row(row) if row is not None else None


CONNECTOR_TYPE = AiosqliteConnector
