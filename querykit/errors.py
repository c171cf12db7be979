from typing import Any, Optional, Sequence


class QueryKitError(Exception):
    """Базовое исключение библиотеки."""


class ConfigurationError(QueryKitError, ValueError):
    """Ошибка конфигурации запроса: отклоняется до построения SQL."""


class InvalidJoinKind(ConfigurationError):
    def __init__(self, kind: str, accepted: Sequence[str]):
        self.kind = kind
        self.accepted = tuple(accepted)
        super().__init__(
            f"The join type must be [{', '.join(self.accepted)}], [{kind}] given."
        )


class InsertValuesError(ConfigurationError):
    """Пустой список значений или несовпадение числа колонок и значений."""


class DatabaseConnectionError(QueryKitError):
    """Не удалось открыть сессию (или сессия ещё не открыта)."""


class NotConnectedError(DatabaseConnectionError):
    def __init__(self, action: str = "this operation"):
        super().__init__(f"Not connected: call connect() before {action}")


class ExecutionError(QueryKitError):
    """
    Ошибка выполнения: некорректный SQL, нарушение ограничения,
    неверное число параметров.
    """

    def __init__(self, message: str, sql: Optional[str] = None, params: Sequence[Any] = ()):
        super().__init__(message)
        self.sql = sql
        self.params = tuple(params)
