# src/neo4jmapper/orm/engine.py
import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple, cast

from neo4j import AsyncDriver, AsyncGraphDatabase, AsyncSession, Record, TrustAll

from neo4jmapper.config import Neo4jSettings, load_settings
from neo4jmapper.exceptions import TransportError

logger = logging.getLogger(__name__)


class GraphEngine:
    """
    Persistence boundary backed by the Neo4j async driver.

    The engine holds the connection configuration and the driver. Statements
    are executed through ``run``, which opens a session for exactly one
    statement and closes it again, so no connection is held between calls.
    """
    def __init__(
        self,
        uri: str,
        auth: Tuple[str, str],
        database: str = "neo4j",
        driver_config: Optional[Dict[str, Any]] = None
    ):
        """
        Initializes the GraphEngine. Does not establish a connection yet.
        Call `await engine.connect()` to establish the connection.

        Args:
            uri: The URI for the Neo4j instance (e.g., "bolt://localhost:7687").
            auth: A tuple of (username, password).
            database: The default Neo4j database name for sessions created by this engine.
            driver_config: Additional configuration options for the Neo4j driver.
        """
        self.uri: str = uri
        self.auth: Tuple[str, str] = auth
        self.default_database: str = database

        _driver_defaults = {
            "trusted_certificates": TrustAll(),
            "max_connection_lifetime": 3600 * 24 * 30,  # seconds
            "keep_alive": True,
            "user_agent": "Neo4jMapperEngine/0.1.0"
        }
        self.driver_config: Dict[str, Any] = {**_driver_defaults, **(driver_config or {})}

        self._driver: Optional[AsyncDriver] = None
        self._is_connected: bool = False
        self._connection_lock = asyncio.Lock()

    async def connect(self) -> None:
        """
        Establishes and verifies the connection to the Neo4j database.
        This method is idempotent.

        Raises:
            TransportError: If the driver cannot be created or verified.
        """
        async with self._connection_lock:
            if self._is_connected and self._driver:
                return

            logger.info("Connecting to %s (default session DB: '%s')", self.uri, self.default_database)
            try:
                self._driver = AsyncGraphDatabase.driver(
                    self.uri,
                    auth=self.auth,
                    **self.driver_config
                )
                await self._driver.verify_connectivity()
                self._is_connected = True
                logger.info("Successfully connected to %s", self.uri)
            except Exception as e:
                self._driver = None
                self._is_connected = False
                logger.error("Connection to %s failed: %s", self.uri, e)
                raise TransportError(f"Failed to connect to Neo4j at {self.uri}: {e}") from e

    async def close(self) -> None:
        """Closes the Neo4j driver connection if it's open."""
        async with self._connection_lock:
            if self._driver and self._is_connected:
                logger.info("Closing connection to %s", self.uri)
                await self._driver.close()
                self._driver = None
                self._is_connected = False
                logger.info("Connection to %s closed", self.uri)
            elif self._driver and not self._is_connected:
                logger.warning("Driver for %s exists but was not fully connected; closing it", self.uri)
                await self._driver.close()
                self._driver = None
                self._is_connected = False

    def get_session(self, database: Optional[str] = None) -> AsyncSession:
        """
        Returns an asynchronous Neo4j session from the engine's driver.

        Args:
            database: The name of the database to use for this session.
                      If None, uses the engine's `default_database`.

        Raises:
            TransportError: If the engine is not connected.
        """
        if not self._driver or not self._is_connected:
            raise TransportError(
                f"GraphEngine for {self.uri} is not connected. Call `await engine.connect()` first."
            )

        db_to_use = database or self.default_database
        return cast(AsyncSession, self._driver.session(database=db_to_use))

    async def run(self, statement: str, parameters: Optional[Dict[str, Any]] = None) -> List[Record]:
        """
        Executes one statement in its own session and returns every record.

        Driver errors propagate unchanged; nothing is retried.

        Args:
            statement: Cypher script.
            parameters: Parameter name -> value.

        Returns:
            The records, consumed before the session is closed.
        """
        async with self.get_session() as session:
            result = await session.run(statement, parameters or {})
            return [record async for record in result]

    @property
    def driver(self) -> AsyncDriver:
        """
        Provides direct access to the underlying Neo4j AsyncDriver.

        Raises:
            TransportError: If the engine is not connected.
        """
        if not self._driver or not self._is_connected:
            raise TransportError(
                f"GraphEngine for {self.uri} is not connected. Call `await engine.connect()` first."
            )
        return self._driver

    @property
    def connected(self) -> bool:
        """Returns True if the engine is currently connected, False otherwise."""
        return self._is_connected

    async def __aenter__(self) -> "GraphEngine":
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()


def create_graph_engine(
    uri: str,
    auth: Tuple[str, str],
    database: str = "neo4j",
    **driver_config: Any
) -> GraphEngine:
    """
    Creates and returns a GraphEngine instance.

    The engine must be explicitly connected using `await engine.connect()`
    or by using it as an async context manager (`async with engine:`).

    Args:
        uri: The URI for the Neo4j instance (e.g., "bolt://localhost:7687").
        auth: A tuple of (username, password).
        database: The default Neo4j database name for sessions.
        **driver_config: Additional configuration options for the Neo4j driver
                         (e.g., user_agent, keep_alive, max_connection_pool_size).
    """
    logger.debug("Creating GraphEngine for URI: %s, default DB: %s", uri, database)
    return GraphEngine(uri=uri, auth=auth, database=database, driver_config=driver_config)


def create_graph_engine_from_settings(
    settings: Optional[Neo4jSettings] = None,
    **driver_config: Any
) -> GraphEngine:
    """
    Creates a GraphEngine from ``NEO4J_*`` environment settings.

    Args:
        settings: Settings to use; read from the environment when omitted.
        **driver_config: Additional configuration options for the Neo4j driver.
    """
    settings = settings or load_settings()
    return create_graph_engine(settings.uri, settings.auth, settings.database, **driver_config)
