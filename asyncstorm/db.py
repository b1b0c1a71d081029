"""
The main Database object. This is the "database interface" to the actual storage engine.
"""
import importlib
import logging
import typing
from urllib.parse import ParseResult, urlparse

from asyncstorm.backends.base import BaseConnector, BaseDialect, BaseTransaction, DictRow
from asyncstorm.orm import session as md_session
from asyncstorm.orm.schema import model as md_model

# sentinels
NO_CONNECTOR = object()

logger = logging.getLogger("asyncstorm")


class DatabaseInterface(object):
    """
    The "database interface" to your database. This provides the actual connection to the
    engine, and the one operation the ORM needs from it: running statements inside an atomic
    unit.

    .. code-block:: python3

        # pass the DSN in the constructor
        db = DatabaseInterface("sqlite3:///:memory:")
        await db.connect()
        # or provide it in the `.connect()` call
        await db.connect("sqlite3:///:memory:")

    """

    def __init__(self, dsn: str = None):
        """
        :param dsn:
            The `Data Source Name <http://whatis.techtarget.com/definition/data-source-name-DSN>_`
            to connect to the database on.
        """
        self._dsn = dsn

        #: The current connector instance.
        self.connector = None  # type: BaseConnector

        #: The current Dialect instance.
        self.dialect = None  # type: BaseDialect

    async def __aenter__(self):
        if not self.connected:
            await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False

    @property
    def connected(self):
        """
        Checks if this DB is connected.
        """
        return self.connector is not None

    def bind_models(self, md: 'md_model.ModelMetadata') -> 'md_model.ModelMetadata':
        """
        Binds models to this DB instance, resolving their relations.

        :param md: The :class:`.ModelMetadata`, or the base class returned by
            :func:`.model_base` (or any model built on it).
        """
        if isinstance(md, md_model.ModelMeta):
            md = md.metadata
        # first set a bind on the metadata
        md.bind = self
        # then setup models
        md.setup_models()
        return md

    async def connect(self, dsn: str = None, **kwargs) -> BaseConnector:
        """
        Connects the interface to the database.

        :param dsn: The Data Source Name to connect to, if it was not specified in the constructor.
        :return: The :class:`~.BaseConnector` established.
        """
        if dsn is not None:
            self._dsn = dsn

        parsed_dsn = urlparse(self._dsn)  # type: ParseResult
        # db type must always exist
        # the connector doesn't have to exist, however
        # if so we use a sentinel value
        schemes = parsed_dsn.scheme.split("+")
        db_type = schemes[0]
        try:
            db_connector = schemes[1]
        except IndexError:
            db_connector = NO_CONNECTOR

        import_path = "asyncstorm.backends.{}".format(db_type)
        package = importlib.import_module(import_path)
        if db_connector is not NO_CONNECTOR:
            mod_path = ".".join([import_path, db_connector])
        else:
            mod_path = ".".join([import_path, package.DEFAULT_CONNECTOR])

        self.dialect = getattr(package, "{}Dialect".format(db_type.title()))()

        logger.debug("Loading connector {}".format(mod_path))

        connector_mod = importlib.import_module(mod_path)
        connector_ins = connector_mod.CONNECTOR_TYPE(
            parsed_dsn, dialect=self.dialect, **kwargs
        )  # type: BaseConnector
        self.connector = connector_ins
        try:
            await self.connector.connect()
        except Exception:
            # delete self.connector and re-raise in the event that it fucks up
            self.connector = None
            raise

        return self.connector

    def get_transaction(self) -> BaseTransaction:
        """
        Gets a low-level :class:`.BaseTransaction`.

        .. code-block:: python3

            async with db.get_transaction() as transaction:
                results = await transaction.cursor("SELECT 1;")
        """
        return self.connector.get_transaction()

    def get_session(self) -> 'md_session.Session':
        """
        Gets a new :class:`.Session` bound to this instance.
        """
        return md_session.Session(self)

    async def execute(self, *statements: str) -> typing.List[DictRow]:
        """
        Runs one or more statements inside a single atomic unit.

        The statements run in order; if one fails, the whole unit is rolled back and the
        :class:`.StorageError` propagates.

        :param statements: The SQL statements to run.
        :return: The rows produced by the last statement.
        """
        rows = []
        async with self.get_session() as sess:
            for sql in statements:
                logger.debug("Executing: {}".format(sql))
                rows = await sess.fetch_all(sql)

        return rows

    async def close(self):
        """
        Closes the current database interface.
        """
        if self.connector is not None:
            await self.connector.close()
            self.connector = None
