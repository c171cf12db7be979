from __future__ import annotations
from typing import List

from sqlalchemy import inspect
from sqlalchemy.exc import CompileError, NoSuchTableError, SQLAlchemyError

from querykit.db.executor import SqlAlchemyExecutor
from querykit.errors import ExecutionError

from .base import BaseExtractor, ColumnInfo, split_fqn


def _type_name(sa_type) -> str:
    # NullType (колонка без типа в SQLite) не компилируется в DDL
    try:
        return str(sa_type)
    except CompileError:
        return type(sa_type).__name__


class InspectorExtractor(BaseExtractor):
    """
    реализация BaseExtractor через sqlalchemy.inspect() для СУБД
    без INFORMATION_SCHEMA (SQLite).
    """

    executor: SqlAlchemyExecutor

    def __init__(self, executor: SqlAlchemyExecutor):
        super().__init__(executor)

    def list_columns(self, table: str) -> List[ColumnInfo]:
        schema, name = split_fqn(table)
        try:
            with self.executor.session() as conn:
                cols = inspect(conn).get_columns(name, schema=schema)
        except NoSuchTableError:
            return []
        except SQLAlchemyError as e:
            raise ExecutionError(f"Can't read columns of '{table}': {e}") from e

        return [
            ColumnInfo(
                name=c["name"],
                data_type=_type_name(c["type"]),
                is_nullable=bool(c.get("nullable", True)),
                ordinal_position=pos,
                default=c.get("default"),
            )
            for pos, c in enumerate(cols, start=1)
        ]
