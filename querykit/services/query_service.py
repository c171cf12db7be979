import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from querykit.db.executor import Executor
from querykit.errors import ExecutionError
from querykit.state.query_state import SqlStatement

logger = logging.getLogger(__name__)

FETCH_ROWS = "rows"
FETCH_INSERT_ID = "insert_id"
FETCH_NONE = "none"


@dataclass
class QueryResult:
    """
    Результат терминальной операции: либо данные, либо структурированная ошибка.
    Строка ошибки никогда не возвращается вместо данных.
    """

    ok: bool
    sql: str
    params: Tuple[Any, ...] = ()
    rows: List[Dict[str, Any]] = field(default_factory=list)
    columns: List[str] = field(default_factory=list)
    last_insert_id: Any = None
    rowcount: int = -1
    duration_ms: int = 0
    error: Optional[ExecutionError] = None
    fetch: str = FETCH_ROWS

    def __bool__(self) -> bool:
        return self.ok

    def unwrap(self) -> Any:
        """Строки (или id вставки); при ошибке поднимает сохранённую ExecutionError."""
        if not self.ok:
            raise self.error
        if self.fetch == FETCH_INSERT_ID:
            return self.last_insert_id
        if self.fetch == FETCH_NONE:
            return self.rowcount
        return self.rows


class QueryService:
    def __init__(self, executor: Executor):
        self.executor = executor
        # колбэк истории: получает dict с sql_text / ok / duration_ms / error_text
        self.on_logged: Optional[Callable[[Dict[str, Any]], None]] = None

    def run(self, statement: SqlStatement, fetch: str = FETCH_ROWS) -> QueryResult:
        t0 = time.perf_counter()
        result = QueryResult(ok=True, sql=statement.sql, params=tuple(statement.params), fetch=fetch)
        try:
            handle = self.executor.prepare(statement.sql).execute(statement.params)
            result.rowcount = handle.rowcount
            if fetch == FETCH_ROWS:
                result.rows = handle.fetch_all()
                result.columns = list(handle.columns)
            elif fetch == FETCH_INSERT_ID:
                result.last_insert_id = handle.last_insert_id()
        except ExecutionError as e:
            result.ok, result.error = False, e
            logger.warning("query failed: %s | %s", statement.sql, e)
        result.duration_ms = round((time.perf_counter() - t0) * 1000)

        cb = self.on_logged
        if callable(cb):
            cb({
                "sql_text": result.sql,
                "ok": result.ok,
                "duration_ms": result.duration_ms,
                "error_text": str(result.error) if result.error else None,
            })

        return result
