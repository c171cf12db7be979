from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

from sqlalchemy import text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from querykit.errors import DatabaseConnectionError, ExecutionError, NotConnectedError

logger = logging.getLogger(__name__)

Row = Dict[str, Any]


def to_named_binds(sql: str) -> Tuple[str, int]:
    """
    Переводит позиционные `?` в именованные `:p1, :p2, ...` для sqlalchemy.text().

    `?` внутри строковых литералов ('...') и кавыченных идентификаторов ("...")
    не трогаем. Одиночные двоеточия экранируем, чтобы text() не принял их за
    параметры; `::` (каст в PostgreSQL) оставляем как есть,
    а плейсхолдер перед кастом берём в скобки: `?::int` -> `(:p1)::int`.
    Возвращает (sql, число плейсхолдеров).
    """
    out: List[str] = []
    quote: Optional[str] = None
    count = 0
    i, n = 0, len(sql)
    while i < n:
        ch = sql[i]
        if ch == ":":
            if i + 1 < n and sql[i + 1] == ":":
                out.append("::")
                i += 2
                continue
            out.append("\\:")
        elif quote is not None:
            out.append(ch)
            if ch == quote:
                quote = None
        elif ch in ("'", '"'):
            quote = ch
            out.append(ch)
        elif ch == "?":
            count += 1
            bind = f":p{count}"
            # `?::int`: за именем параметра не должно идти двоеточие, иначе text() его не увидит
            if sql.startswith("::", i + 1):
                bind = f"({bind})"
            out.append(bind)
        else:
            out.append(ch)
        i += 1
    return "".join(out), count


class ResultHandle:
    """Результат одного выполнения: строки (словари column -> value) или id вставки."""

    def __init__(
        self,
        rows: Optional[List[Row]] = None,
        columns: Sequence[str] = (),
        rowcount: int = -1,
        last_insert_id: Any = None,
        last_insert_id_loader: Optional[Callable[[], Any]] = None,
    ):
        self._rows = list(rows or [])
        self.columns = tuple(columns)
        self.rowcount = rowcount
        self._last_insert_id = last_insert_id
        self._loader = last_insert_id_loader

    def fetch_all(self) -> List[Row]:
        return list(self._rows)

    def last_insert_id(self) -> Any:
        if self._loader is not None:
            self._last_insert_id = self._loader()
            self._loader = None
        return self._last_insert_id


class PreparedStatement:
    def __init__(self, executor: "Executor", sql: str):
        self.executor = executor
        self.sql = sql

    def execute(self, params: Sequence[Any] = ()) -> ResultHandle:
        """Выполнить с позиционными параметрами; при ошибке ExecutionError."""
        return self.executor.execute(self.sql, params)


class Executor(ABC):
    """
    Контракт исполнителя SQL: prepare(sql).execute(params) -> ResultHandle,
    плюс примитивы транзакций.
    """

    dialect_name: str = ""

    def prepare(self, sql: str) -> PreparedStatement:
        return PreparedStatement(self, sql)

    @abstractmethod
    def execute(self, sql: str, params: Sequence[Any] = ()) -> ResultHandle:
        """Выполнить SQL с `?`-плейсхолдерами."""

    @property
    @abstractmethod
    def in_transaction(self) -> bool:
        ...

    @abstractmethod
    def begin(self) -> None:
        ...

    @abstractmethod
    def commit(self) -> None:
        ...

    @abstractmethod
    def rollback(self) -> None:
        ...

    @abstractmethod
    def close(self) -> None:
        ...


class SqlAlchemyExecutor(Executor):
    """
    Исполнитель поверх одного SQLAlchemy Connection (одна сессия на весь срок жизни).

    Вне явной транзакции каждый запрос коммитится сразу;
    после begin() коммит/откат делает вызывающий код.
    """

    def __init__(self, engine: Engine):
        self.engine = engine
        self.dialect_name = engine.dialect.name
        self._conn: Optional[Connection] = None
        self._tx = None

    # ---- сессия ----

    def open(self) -> "SqlAlchemyExecutor":
        if self._conn is not None:
            return self
        try:
            self._conn = self.engine.connect()
        except SQLAlchemyError as e:
            raise DatabaseConnectionError(
                f"Can't connect to {self.engine.url.render_as_string(hide_password=True)}: {e}"
            ) from e
        return self

    @property
    def connection(self) -> Connection:
        if self._conn is None:
            raise NotConnectedError("using the connection")
        return self._conn

    @contextmanager
    def session(self) -> Iterator[Connection]:
        """
        Отдаёт соединение; если явной транзакции нет, по выходе коммитит
        (или откатывает при ошибке) неявно начатую.
        """
        conn = self.connection
        try:
            yield conn
        except SQLAlchemyError:
            if self._tx is None and conn.in_transaction():
                conn.rollback()
            raise
        if self._tx is None and conn.in_transaction():
            conn.commit()

    # ---- выполнение ----

    def execute(self, sql: str, params: Sequence[Any] = ()) -> ResultHandle:
        params = tuple(params)
        named_sql, count = to_named_binds(sql)
        if count != len(params):
            raise ExecutionError(
                f"Statement has {count} placeholder(s) but {len(params)} parameter(s) were given",
                sql,
                params,
            )
        binds = {f"p{i}": value for i, value in enumerate(params, start=1)}

        logger.debug("execute: %s | params=%r", sql, params)
        try:
            with self.session() as conn:
                result = conn.execute(text(named_sql), binds)
                return self._to_handle(result)
        except SQLAlchemyError as e:
            orig = getattr(e, "orig", None)
            raise ExecutionError(str(orig) if orig is not None else str(e), sql, params) from e

    def _to_handle(self, result) -> ResultHandle:
        if result.returns_rows:
            columns = list(result.keys())
            rows = [dict(r) for r in result.mappings()]
            return ResultHandle(rows=rows, columns=columns, rowcount=len(rows))

        if self.dialect_name == "postgresql":
            # lastrowid у psycopg2 это OID; id из последовательности берём lastval()
            return ResultHandle(rowcount=result.rowcount, last_insert_id_loader=self._lastval)
        return ResultHandle(rowcount=result.rowcount, last_insert_id=result.lastrowid)

    def _lastval(self) -> Any:
        """
        id последней вставки из последовательности или None, если в сессии
        её не было (таблица без serial/identity). Внутри явной транзакции
        запрос идёт под SAVEPOINT, чтобы ошибка lastval() не ломала транзакцию.
        """
        sql = text("SELECT lastval()")
        try:
            with self.session() as conn:
                if self._tx is None:
                    return conn.execute(sql).scalar()
                with conn.begin_nested():
                    return conn.execute(sql).scalar()
        except SQLAlchemyError as e:
            logger.debug("no insert id available: %s", e)
            return None

    # ---- транзакции ----

    @property
    def in_transaction(self) -> bool:
        return self._tx is not None

    def begin(self) -> None:
        conn = self.connection
        if self._tx is not None:
            raise ExecutionError("There is already an active transaction")
        try:
            self._tx = conn.begin()
        except SQLAlchemyError as e:
            raise ExecutionError(f"Can't begin transaction: {e}") from e

    def commit(self) -> None:
        if self._tx is None:
            raise ExecutionError("There is no active transaction")
        tx, self._tx = self._tx, None
        try:
            tx.commit()
        except SQLAlchemyError as e:
            raise ExecutionError(f"Commit failed: {e}") from e

    def rollback(self) -> None:
        if self._tx is None:
            raise ExecutionError("There is no active transaction")
        tx, self._tx = self._tx, None
        try:
            tx.rollback()
        except SQLAlchemyError as e:
            raise ExecutionError(f"Rollback failed: {e}") from e

    def close(self) -> None:
        if self._conn is None:
            return
        try:
            if self._tx is not None:
                self._tx.rollback()
        finally:
            self._tx = None
            self._conn.close()
            self._conn = None
