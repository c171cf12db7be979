from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Optional, Sequence, Tuple

from querykit.errors import ConfigurationError, InsertValuesError, InvalidJoinKind

ACCEPTED_JOINS: Tuple[str, ...] = (
    "INNER JOIN",
    "RIGHT JOIN",
    "LEFT JOIN",
    "LEFT OUTER JOIN",
)

PLACEHOLDER = "?"


@dataclass(frozen=True)
class Predicate:
    connective: str   # AND / OR / NOT
    column: str
    operator: str     # вставляется как есть, не биндится
    value: Any

    def render(self, first: bool) -> str:
        """
        Первый предикат идёт без связки, кроме NOT: он всегда префикс.
        Для последующих: связка, затем (для NOT) ещё раз NOT перед условием.
        """
        parts = []
        if not first:
            parts.append(self.connective)
        if self.connective == "NOT":
            parts.append("NOT")
        parts.append(f"{self.column} {self.operator} {PLACEHOLDER}")
        return " ".join(parts)


@dataclass(frozen=True)
class Join:
    kind: str
    table: str
    on: str   # сырое условие ON, caller-trusted

    def render(self) -> str:
        return f"{self.kind} {self.table} ON {self.on}"


@dataclass(frozen=True)
class OrderSpec:
    columns: str
    direction: str = "ASC"


@dataclass(frozen=True)
class SqlStatement:
    sql: str
    params: Tuple[Any, ...] = ()

    def __str__(self) -> str:
        return self.sql


def _check_non_negative(name: str, n: int) -> int:
    if isinstance(n, bool) or not isinstance(n, int) or n < 0:
        raise ConfigurationError(f"{name} must be a non-negative integer, got {n!r}")
    return n


@dataclass(frozen=True)
class QuerySpec:
    """
    Неизменяемая спецификация запроса.
    Каждый метод-настройщик возвращает новую спецификацию, исходная не меняется,
    поэтому одну и ту же спецификацию можно безопасно переиспользовать.

    Важно: fields, column, operator, table и условие ON подставляются в SQL
    как есть. Туда нельзя передавать недоверенный ввод, через параметры
    биндятся только значения предикатов и значения insert().
    """

    table: str = ""
    fields: str = "*"
    predicates: Tuple[Predicate, ...] = ()
    joins: Tuple[Join, ...] = ()
    order_spec: Optional[OrderSpec] = None
    row_limit: Optional[int] = None
    row_offset: Optional[int] = None

    # ---- настройка ----

    def select(self, fields: str) -> "QuerySpec":
        return replace(self, fields=fields)

    def _add_predicate(self, connective: str, column: str, operator: str, value: Any) -> "QuerySpec":
        pred = Predicate(connective=connective, column=column, operator=operator, value=value)
        return replace(self, predicates=self.predicates + (pred,))

    def where(self, column: str, operator: str, value: Any) -> "QuerySpec":
        return self._add_predicate("AND", column, operator, value)

    def or_where(self, column: str, operator: str, value: Any) -> "QuerySpec":
        return self._add_predicate("OR", column, operator, value)

    def not_where(self, column: str, operator: str, value: Any) -> "QuerySpec":
        return self._add_predicate("NOT", column, operator, value)

    def join(self, kind: str, table: str, on: str) -> "QuerySpec":
        if kind not in ACCEPTED_JOINS:
            raise InvalidJoinKind(kind, ACCEPTED_JOINS)
        return replace(self, joins=self.joins + (Join(kind=kind, table=table, on=on),))

    def order(self, columns: str, direction: str = "ASC") -> "QuerySpec":
        # одна сортировка на запрос: последний вызов побеждает
        return replace(self, order_spec=OrderSpec(columns=columns, direction=direction))

    def limit(self, n: int) -> "QuerySpec":
        """
        LIMIT n. Ноль это настоящий LIMIT 0 (пустая выборка), а не сброс:
        "не задан" обозначается только row_limit=None.
        """
        return replace(self, row_limit=_check_non_negative("limit", n))

    def offset(self, n: int) -> "QuerySpec":
        return replace(self, row_offset=_check_non_negative("offset", n))

    # ---- рендеринг ----

    @property
    def bound_values(self) -> Tuple[Any, ...]:
        """Значения предикатов в порядке добавления (= порядок плейсхолдеров)."""
        return tuple(p.value for p in self.predicates)

    def _require_table(self) -> None:
        if not self.table:
            raise ConfigurationError("No table selected: call table() first")

    def _where_clause(self) -> str:
        if not self.predicates:
            return ""
        chain = " ".join(p.render(first=(i == 0)) for i, p in enumerate(self.predicates))
        return "WHERE " + chain

    def render_select(self) -> SqlStatement:
        """
        SELECT fields FROM table [JOIN ...] [WHERE ...] [ORDER BY ...] [LIMIT n [OFFSET m]]
        """
        self._require_table()

        parts = [f"SELECT {self.fields} FROM {self.table}"]
        parts.extend(j.render() for j in self.joins)

        where_clause = self._where_clause()
        if where_clause:
            parts.append(where_clause)

        if self.order_spec is not None:
            parts.append(f"ORDER BY {self.order_spec.columns} {self.order_spec.direction}")

        # OFFSET без LIMIT не выводится
        if self.row_limit is not None:
            parts.append(f"LIMIT {self.row_limit}")
            if self.row_offset is not None:
                parts.append(f"OFFSET {self.row_offset}")

        return SqlStatement(" ".join(parts), self.bound_values)

    def render_delete(self) -> SqlStatement:
        """DELETE FROM table [WHERE ...] [LIMIT n]; joins, order и offset игнорируются."""
        self._require_table()

        parts = [f"DELETE FROM {self.table}"]
        where_clause = self._where_clause()
        if where_clause:
            parts.append(where_clause)
        if self.row_limit is not None:
            parts.append(f"LIMIT {self.row_limit}")

        return SqlStatement(" ".join(parts), self.bound_values)

    def render_insert(self, columns: str, values: Sequence[Any]) -> SqlStatement:
        self._require_table()

        values = tuple(values)
        if not values:
            raise InsertValuesError("insert() requires at least one value")

        names = [c.strip() for c in columns.split(",") if c.strip()]
        if len(names) != len(values):
            raise InsertValuesError(
                f"insert() got {len(names)} column(s) [{columns}] but {len(values)} value(s)"
            )

        placeholders = ",".join(PLACEHOLDER for _ in values)
        return SqlStatement(
            f"INSERT INTO {self.table} ({columns}) VALUES ({placeholders})",
            values,
        )
