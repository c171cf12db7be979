from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Any, List, Optional, Tuple, TypedDict

from querykit.db.executor import Executor


# ---- типизированные структуры данных

class ColumnInfo(TypedDict, total=False):
    name: str                     # имя колонки
    data_type: str                # тип данных (например: "integer" или "character varying")
    is_nullable: bool             # может ли колонка быть NULL
    ordinal_position: int         # порядковый номер колонки в таблице
    default: Optional[Any]        # значение по умолчанию (если есть)


def split_fqn(fqn: str) -> Tuple[Optional[str], str]:
    """
    'public.users' -> ('public', 'users')
    'users'        -> (None, 'users')
    """
    if "." in fqn:
        schema, table = fqn.split(".", 1)
        return schema, table
    return None, fqn


class BaseExtractor(ABC):
    """
    Абстрактный базовый класс для чтения метаданных каталога
    (колонки таблиц) через уже открытый исполнитель.
    """

    def __init__(self, executor: Executor):
        self.executor = executor

    # ---- основное API ----

    @abstractmethod
    def list_columns(self, table: str) -> List[ColumnInfo]:
        """
        возвращает список колонок таблицы ('table' или 'schema.table')
        с типами данных, nullability и порядком следования.
        Для несуществующей таблицы пустой список.
        """

    def column_exists(self, column: str, table: str) -> bool:
        return any(c["name"] == column for c in self.list_columns(table))
