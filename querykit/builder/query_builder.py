from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError

from querykit.db.connections import DEFAULT_DRIVER, ConnectionSettings, build_url, get_engine
from querykit.db.executor import Executor, SqlAlchemyExecutor
from querykit.errors import ConfigurationError, DatabaseConnectionError, NotConnectedError
from querykit.extractors.base import BaseExtractor
from querykit.extractors.information_schema import InformationSchemaExtractor
from querykit.extractors.inspector import InspectorExtractor
from querykit.services.query_service import (
    FETCH_INSERT_ID,
    FETCH_NONE,
    FETCH_ROWS,
    QueryResult,
    QueryService,
)
from querykit.state.query_state import QuerySpec, SqlStatement

logger = logging.getLogger(__name__)


def extractor_for(executor: Executor) -> BaseExtractor:
    """SQLite не знает INFORMATION_SCHEMA: для него читаем каталог через inspector."""
    if isinstance(executor, SqlAlchemyExecutor) and executor.dialect_name == "sqlite":
        return InspectorExtractor(executor)
    return InformationSchemaExtractor(executor)


class QueryBuilder:
    """
    Fluent-фасад над SQL-исполнителем.

        db = QueryBuilder().configure("localhost", "app", "secret").connect("shop")
        rows = db.table("users").where("age", ">", 18).order("name").limit(10).get().unwrap()

    Настройки копятся в неизменяемой QuerySpec (self.spec); каждый chain-вызов
    заменяет её новой и возвращает self. table() начинает новый запрос
    (полный сброс), close() тоже сбрасывает состояние.

    Терминальные операции (get / first / insert / delete / raw) состояние не меняют
    и возвращают QueryResult: данные либо ExecutionError, без смешивания каналов.

    Экземпляр не потокобезопасен: один builder на одну последовательность
    запросов. Для параллельной работы берите отдельный builder или
    передавайте между потоками саму QuerySpec, она неизменяемая.

    fields, column, operator, имена таблиц и условия ON подставляются как есть;
    недоверенный ввод передавайте только значениями.
    """

    def __init__(
        self,
        settings: Optional[ConnectionSettings] = None,
        executor: Optional[Executor] = None,
    ):
        self.settings = settings or ConnectionSettings.from_env()
        self.database: Optional[str] = None
        self.spec = QuerySpec()
        self._on_logged: Optional[Callable[[Dict[str, Any]], None]] = None
        self._executor: Optional[Executor] = None
        self._service: Optional[QueryService] = None
        if executor is not None:
            self._attach(executor)

    # ---------- подключение ----------

    def configure(
        self,
        host: str = "",
        user: str = "",
        password: str = "",
        driver: str = DEFAULT_DRIVER,
        port: Optional[int] = None,
    ) -> "QueryBuilder":
        """Только сохраняет параметры, без I/O."""
        if self.connected:
            raise ConfigurationError("Can't reconfigure a connected builder; call close() first")
        self.settings = ConnectionSettings(
            host=host, user=user, password=password, driver=driver, port=port
        )
        return self

    def connect(self, database: str) -> "QueryBuilder":
        """
        Открывает сессию к базе `database`.
        При ошибке поднимает DatabaseConnectionError; builder остаётся неподключённым.
        """
        if self.connected:
            raise ConfigurationError(f"Already connected to '{self.database}'; call close() first")

        try:
            engine = get_engine(build_url(self.settings, database))
        except (SQLAlchemyError, ImportError) as e:
            raise DatabaseConnectionError(f"Can't create engine for '{database}': {e}") from e

        executor = SqlAlchemyExecutor(engine).open()
        self.database = database
        self._attach(executor)
        logger.info("connected to '%s' (%s)", database, executor.dialect_name)
        return self

    def _attach(self, executor: Executor) -> None:
        self._executor = executor
        self._service = QueryService(executor)
        self._service.on_logged = self._on_logged

    @property
    def connected(self) -> bool:
        return self._executor is not None

    @property
    def executor(self) -> Executor:
        return self._require_executor("using the executor")

    @property
    def on_logged(self) -> Optional[Callable[[Dict[str, Any]], None]]:
        return self._on_logged

    @on_logged.setter
    def on_logged(self, cb: Optional[Callable[[Dict[str, Any]], None]]) -> None:
        self._on_logged = cb
        if self._service is not None:
            self._service.on_logged = cb

    def _require_executor(self, action: str) -> Executor:
        if self._executor is None:
            raise NotConnectedError(action)
        return self._executor

    def close(self) -> None:
        """Сбрасывает состояние и освобождает сессию."""
        self.reset()
        if self._executor is not None:
            self._executor.close()
            logger.info("closed connection to '%s'", self.database)
        self._executor = None
        self._service = None
        self.database = None

    def __enter__(self) -> "QueryBuilder":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ---------- транзакции ----------

    def transaction(self) -> None:
        self._require_executor("transaction()").begin()

    def commit(self) -> None:
        self._require_executor("commit()").commit()

    def rollback(self) -> None:
        self._require_executor("rollback()").rollback()

    @contextmanager
    def transaction_scope(self) -> Iterator["QueryBuilder"]:
        """commit при успехе, rollback при исключении."""
        self.transaction()
        try:
            yield self
        except BaseException:
            self.rollback()
            raise
        self.commit()

    # ---------- каталог ----------

    def column_exists(self, column: str, table: Optional[str] = None) -> bool:
        """Есть ли колонка в таблице (по умолчанию в текущей выбранной)."""
        executor = self._require_executor("column_exists()")
        table = table or self.spec.table
        if not table:
            raise ConfigurationError("column_exists() needs a table: pass one or call table() first")
        return extractor_for(executor).column_exists(column, table)

    # ---------- настройка запроса ----------

    def reset(self) -> "QueryBuilder":
        self.spec = QuerySpec()
        return self

    def table(self, name: str) -> "QueryBuilder":
        """Начинает новый запрос: всё накопленное состояние сбрасывается."""
        self.spec = QuerySpec(table=name)
        return self

    new_query = table

    def select(self, fields: str) -> "QueryBuilder":
        self.spec = self.spec.select(fields)
        return self

    def where(self, column: str, operator: str, value: Any) -> "QueryBuilder":
        self.spec = self.spec.where(column, operator, value)
        return self

    def or_where(self, column: str, operator: str, value: Any) -> "QueryBuilder":
        self.spec = self.spec.or_where(column, operator, value)
        return self

    def not_where(self, column: str, operator: str, value: Any) -> "QueryBuilder":
        self.spec = self.spec.not_where(column, operator, value)
        return self

    def join(self, kind: str, table: str, on: str) -> "QueryBuilder":
        # при неверном kind исключение летит до присваивания: список join'ов не меняется
        self.spec = self.spec.join(kind, table, on)
        return self

    def order(self, columns: str, direction: str = "ASC") -> "QueryBuilder":
        self.spec = self.spec.order(columns, direction)
        return self

    def limit(self, n: int) -> "QueryBuilder":
        """limit(0) даёт LIMIT 0, а не отсутствие лимита."""
        self.spec = self.spec.limit(n)
        return self

    def offset(self, n: int) -> "QueryBuilder":
        self.spec = self.spec.offset(n)
        return self

    def to_sql(self) -> SqlStatement:
        """SELECT, который выполнит get(), без выполнения."""
        return self.spec.render_select()

    # ---------- терминальные операции ----------

    def _run(self, action: str, statement: SqlStatement, fetch: str) -> QueryResult:
        self._require_executor(action)
        logger.debug("%s: %s | params=%r", action, statement.sql, statement.params)
        return self._service.run(statement, fetch=fetch)

    def get(self) -> QueryResult:
        return self._run("get()", self.spec.render_select(), FETCH_ROWS)

    def first(self) -> Optional[Dict[str, Any]]:
        """Первая строка (LIMIT 1) или None; ошибка выполнения поднимается."""
        rows = self._run("first()", self.spec.limit(1).render_select(), FETCH_ROWS).unwrap()
        return rows[0] if rows else None

    def insert(self, columns: str, values: Sequence[Any]) -> QueryResult:
        """
        INSERT INTO table (columns) VALUES (?,...).
        columns: строка имён через запятую; values: по одному значению на колонку.
        Пустой values или несовпадение числа колонок поднимают InsertValuesError
        до обращения к базе. id новой строки в result.last_insert_id.
        """
        return self._run("insert()", self.spec.render_insert(columns, values), FETCH_INSERT_ID)

    def delete(self) -> QueryResult:
        return self._run("delete()", self.spec.render_delete(), FETCH_NONE)

    def raw(self, sql: str, params: Sequence[Any] = ()) -> QueryResult:
        """Выполняет SQL как есть, состояние builder'а не используется."""
        return self._run("raw()", SqlStatement(sql, tuple(params)), FETCH_ROWS)
