import threading
from concurrent.futures import ThreadPoolExecutor

import pymysql
import pytest

from sqldrizzler import database
from sqldrizzler.database import DatabaseConfig, DatabaseHandle, DatabaseUnavailableError


class FakeCursor:
    def __init__(self, conn):
        self.conn = conn

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def execute(self, query):
        assert not self.conn.busy, "connection shared between threads"
        self.conn.busy = True
        try:
            if self.conn.fail_with is not None:
                raise self.conn.fail_with
            self.conn.executed.append(query)
            return 1
        finally:
            self.conn.busy = False

    def fetchall(self):
        return ()


class FakeConnection:
    def __init__(self, **kwargs):
        self.kwargs = kwargs
        self.executed = []
        self.closed = False
        self.busy = False
        self.fail_with = None

    def cursor(self):
        return FakeCursor(self)

    def close(self):
        self.closed = True


@pytest.fixture
def connections(monkeypatch):
    made = []
    lock = threading.Lock()

    def connect(**kwargs):
        conn = FakeConnection(**kwargs)
        with lock:
            made.append(conn)
        return conn

    monkeypatch.setattr(database.pymysql, "connect", connect)
    return made


def test_from_host_splits_port():
    cfg = DatabaseConfig.from_host("db.internal:3307", user="app", database="shop")
    assert (cfg.host, cfg.port, cfg.user, cfg.database) == ("db.internal", 3307, "app", "shop")


def test_from_host_default_port():
    cfg = DatabaseConfig.from_host("db.internal")
    assert cfg.port == 3306
    assert DatabaseConfig.from_host(":3306").host == "localhost"


def test_from_host_bad_port():
    with pytest.raises(ValueError):
        DatabaseConfig.from_host("db:mysql")


def test_open_passes_credentials(connections):
    cfg = DatabaseConfig(host="h", port=1, user="u", password="p", database="d")
    handle = DatabaseHandle.open(cfg)
    assert len(connections) == 1
    kwargs = connections[0].kwargs
    assert (kwargs["host"], kwargs["port"], kwargs["user"], kwargs["password"], kwargs["database"]) == (
        "h", 1, "u", "p", "d",
    )
    assert kwargs["autocommit"] is True
    handle.close()


def test_open_failure_raises_unavailable(monkeypatch):
    def connect(**kwargs):
        raise pymysql.err.OperationalError(2003, "Can't connect to MySQL server")

    monkeypatch.setattr(database.pymysql, "connect", connect)
    with pytest.raises(DatabaseUnavailableError):
        DatabaseHandle.open(DatabaseConfig())


def test_sequential_execute_reuses_connection(connections):
    handle = DatabaseHandle.open(DatabaseConfig())
    for _ in range(5):
        handle.execute("SELECT 1")
    assert len(connections) == 1
    assert connections[0].executed == ["SELECT 1"] * 5


def test_concurrent_execute_never_shares_a_connection(connections):
    handle = DatabaseHandle.open(DatabaseConfig())
    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(lambda _: handle.execute("SELECT 1"), range(200)))
    assert sum(len(c.executed) for c in connections) == 200
    assert 1 <= len(connections) <= 8


def test_query_error_propagates_and_keeps_connection(connections):
    handle = DatabaseHandle.open(DatabaseConfig())
    connections[0].fail_with = pymysql.err.ProgrammingError(1146, "Table 'd.t' doesn't exist")
    with pytest.raises(pymysql.err.ProgrammingError):
        handle.execute("SELECT * FROM t")
    connections[0].fail_with = None
    handle.execute("SELECT 1")
    assert len(connections) == 1


def test_broken_connection_is_discarded(connections):
    handle = DatabaseHandle.open(DatabaseConfig())
    connections[0].fail_with = pymysql.err.OperationalError(2013, "Lost connection")
    with pytest.raises(pymysql.err.OperationalError):
        handle.execute("SELECT 1")
    assert connections[0].closed
    handle.execute("SELECT 1")
    assert len(connections) == 2


def test_close_closes_everything_and_rejects_use(connections):
    handle = DatabaseHandle.open(DatabaseConfig())
    handle.close()
    handle.close()
    assert all(c.closed for c in connections)
    with pytest.raises(DatabaseUnavailableError):
        handle.execute("SELECT 1")


@pytest.mark.parametrize(
    "error",
    [
        pymysql.err.InternalError(1156, "Packet sequence number wrong"),
        pymysql.err.InterfaceError(0, ""),
    ],
)
def test_desynchronized_connection_is_discarded(connections, error):
    handle = DatabaseHandle.open(DatabaseConfig())
    connections[0].fail_with = error
    with pytest.raises(type(error)):
        handle.execute("SELECT 1")
    assert connections[0].closed
    handle.execute("SELECT 1")
    assert len(connections) == 2
