from __future__ import annotations
from typing import Any, List, Optional, Tuple

from .base import BaseExtractor, ColumnInfo, split_fqn

# схема по умолчанию, если имя таблицы пришло без неё
CURRENT_SCHEMA = {
    "mysql": "DATABASE()",
    "mariadb": "DATABASE()",
    "postgresql": "current_schema()",
    "mssql": "SCHEMA_NAME()",
}


class InformationSchemaExtractor(BaseExtractor):
    """
    реализация BaseExtractor через INFORMATION_SCHEMA
    (PostgreSQL, MySQL/MariaDB, MSSQL).
    """

    def _table_filter(self, table: str) -> Tuple[List[str], List[Any]]:
        """
        Условия на table_name/table_schema. Без схемы ограничиваемся текущей,
        иначе MySQL ищет по всем базам сервера.
        """
        schema, name = split_fqn(table)
        where = ["table_name = ?"]
        params: List[Any] = [name]
        if schema:
            where.append("table_schema = ?")
            params.append(schema)
        else:
            current: Optional[str] = CURRENT_SCHEMA.get(self.executor.dialect_name)
            if current:
                where.append(f"table_schema = {current}")
        return where, params

    def list_columns(self, table: str) -> List[ColumnInfo]:
        """
        Колонки с типами, nullability и default; с порядком.
        """
        where, params = self._table_filter(table)

        where_sql = " AND ".join(where)
        sql = f"""
            SELECT
                column_name AS column_name,
                data_type AS data_type,
                is_nullable AS is_nullable,
                ordinal_position AS ordinal_position,
                column_default AS column_default
            FROM information_schema.columns
            WHERE {where_sql}
            ORDER BY ordinal_position
        """
        rows = self.executor.prepare(sql).execute(params).fetch_all()

        return [
            ColumnInfo(
                name=r["column_name"],
                data_type=r["data_type"],
                is_nullable=str(r["is_nullable"]).upper() == "YES",
                ordinal_position=int(r["ordinal_position"]),
                default=r["column_default"],
            )
            for r in rows
        ]

    def column_exists(self, column: str, table: str) -> bool:
        # точечный запрос вместо выборки всех колонок
        where, params = self._table_filter(table)
        where.insert(1, "column_name = ?")
        params.insert(1, column)

        sql = "SELECT COUNT(*) AS n FROM information_schema.columns WHERE " + " AND ".join(where)
        rows = self.executor.prepare(sql).execute(params).fetch_all()
        return bool(rows) and int(rows[0]["n"]) > 0
