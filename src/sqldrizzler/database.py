import logging
import queue
import threading
from dataclasses import dataclass

import pymysql

logger = logging.getLogger(__name__)

DEFAULT_MYSQL_PORT = 3306


class DatabaseUnavailableError(RuntimeError):
    """Raised when the database handle cannot be opened."""


@dataclass(frozen=True)
class DatabaseConfig:
    host: str = "localhost"
    port: int = DEFAULT_MYSQL_PORT
    user: str = "root"
    password: str = ""
    database: str = "your_database_name"
    connect_timeout: int = 10

    @classmethod
    def from_host(cls, host: str, **kwargs) -> "DatabaseConfig":
        """Build a config from a ``host:port`` string (port defaults to 3306)."""
        name, sep, port = host.rpartition(":")
        if not sep:
            return cls(host=host or "localhost", **kwargs)
        if not port.isdigit():
            raise ValueError(f"Invalid port in host {host!r}")
        return cls(host=name or "localhost", port=int(port), **kwargs)

    def describe(self) -> str:
        return f"{self.user}@{self.host}:{self.port}/{self.database}"


class DatabaseHandle:
    """Shared handle that executes queries for many threads at once.

    PyMySQL connections must not be used by two threads concurrently, so the
    handle keeps a pool of idle connections and lends one to each caller for
    the duration of a single execution. New connections are opened on demand
    when the pool is empty.
    """

    def __init__(self, config: DatabaseConfig) -> None:
        self.config = config
        self._idle: queue.SimpleQueue = queue.SimpleQueue()
        self._all: list[pymysql.connections.Connection] = []
        self._lock = threading.Lock()
        self._closed = False

    @classmethod
    def open(cls, config: DatabaseConfig) -> "DatabaseHandle":
        handle = cls(config)
        logger.info(f"Opening database connection to {config.describe()}")
        try:
            handle._idle.put(handle._connect())
        except pymysql.MySQLError as exc:
            raise DatabaseUnavailableError(
                f"Cannot connect to {config.describe()}: {exc}"
            ) from exc
        logger.info("Database connection opened.")
        return handle

    def _connect(self) -> pymysql.connections.Connection:
        conn = pymysql.connect(
            host=self.config.host,
            port=self.config.port,
            user=self.config.user,
            password=self.config.password,
            database=self.config.database,
            connect_timeout=self.config.connect_timeout,
            autocommit=True,
        )
        with self._lock:
            self._all.append(conn)
        logger.debug(f"Opened connection #{len(self._all)} to {self.config.host}")
        return conn

    def _acquire(self) -> pymysql.connections.Connection:
        if self._closed:
            raise DatabaseUnavailableError("Database handle is closed")
        try:
            return self._idle.get_nowait()
        except queue.Empty:
            return self._connect()

    def execute(self, query: str) -> int:
        """Execute *query* once, draining any result set. Returns affected rows."""
        conn = self._acquire()
        broken = False
        try:
            with conn.cursor() as cur:
                affected = cur.execute(query)
                cur.fetchall()
            return affected
        except (
            pymysql.err.OperationalError,
            pymysql.err.InternalError,
            pymysql.err.InterfaceError,
        ):
            # Connection may be broken; do not hand it out again.
            broken = True
            raise
        finally:
            if broken:
                self._discard(conn)
            else:
                self._idle.put(conn)

    def _discard(self, conn: pymysql.connections.Connection) -> None:
        with self._lock:
            if conn in self._all:
                self._all.remove(conn)
        try:
            conn.close()
        except pymysql.MySQLError as exc:
            logger.debug(f"Ignoring error while closing broken connection: {exc}")

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            conns, self._all = self._all, []
        for conn in conns:
            try:
                conn.close()
            except pymysql.MySQLError as exc:
                logger.warning(f"Error closing connection: {exc}")
        logger.info(f"Closed {len(conns)} database connection(s).")
