import pytest

from querykit.builder.query_builder import QueryBuilder
from querykit.db.connections import ConnectionSettings, dispose_engines
from querykit.db.executor import Executor, ResultHandle

ENV_VARS = (
    "BASE_DSN",
    "QUERYKIT_DB_HOST",
    "QUERYKIT_DB_USER",
    "QUERYKIT_DB_PASSWORD",
    "QUERYKIT_DB_DRIVER",
    "QUERYKIT_DB_PORT",
)


class RecordingExecutor(Executor):
    """Fake executor: remembers every (sql, params) and replays canned results."""

    dialect_name = "fake"

    def __init__(self):
        self.calls = []
        self.rows = []
        self.last_id = None
        self.rowcount = 0
        self.error = None
        self.tx_events = []
        self.closed = False
        self._in_tx = False

    def execute(self, sql, params=()):
        self.calls.append((sql, tuple(params)))
        if self.error is not None:
            raise self.error
        columns = list(self.rows[0]) if self.rows else []
        return ResultHandle(
            rows=self.rows,
            columns=columns,
            rowcount=self.rowcount,
            last_insert_id=self.last_id,
        )

    @property
    def in_transaction(self):
        return self._in_tx

    def begin(self):
        self._in_tx = True
        self.tx_events.append("begin")

    def commit(self):
        self._in_tx = False
        self.tx_events.append("commit")

    def rollback(self):
        self._in_tx = False
        self.tx_events.append("rollback")

    def close(self):
        self.closed = True


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    yield
    dispose_engines()


@pytest.fixture
def recorder():
    return RecordingExecutor()


@pytest.fixture
def fake_db(recorder):
    return QueryBuilder(settings=ConnectionSettings(), executor=recorder)


@pytest.fixture
def sqlite_db(tmp_path):
    db = QueryBuilder().configure(driver="sqlite").connect(str(tmp_path / "test.db"))
    db.raw(
        "CREATE TABLE users ("
        " id INTEGER PRIMARY KEY AUTOINCREMENT,"
        " name TEXT NOT NULL,"
        " email TEXT,"
        " age INTEGER)"
    ).unwrap()
    db.raw(
        "CREATE TABLE orders ("
        " id INTEGER PRIMARY KEY AUTOINCREMENT,"
        " user_id INTEGER NOT NULL,"
        " total INTEGER NOT NULL)"
    ).unwrap()
    yield db
    db.close()
