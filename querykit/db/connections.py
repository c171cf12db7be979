import logging
import os
import time
from dataclasses import dataclass
from typing import Dict, Optional

from dotenv import load_dotenv
from sqlalchemy import create_engine, text
from sqlalchemy.engine import URL, Engine, make_url

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_DRIVER = "postgresql+psycopg2"

# кеш движков по URL
_engines: Dict[str, Engine] = {}


@dataclass(frozen=True)
class ConnectionSettings:
    """Параметры подключения; задаются один раз до connect()."""

    host: str = ""
    user: str = ""
    password: str = ""
    driver: str = DEFAULT_DRIVER
    port: Optional[int] = None

    @classmethod
    def from_env(cls) -> "ConnectionSettings":
        """
        Читает QUERYKIT_DB_HOST / _USER / _PASSWORD / _DRIVER / _PORT
        (в том числе из .env).
        """
        port = os.getenv("QUERYKIT_DB_PORT")
        return cls(
            host=os.getenv("QUERYKIT_DB_HOST", ""),
            user=os.getenv("QUERYKIT_DB_USER", ""),
            password=os.getenv("QUERYKIT_DB_PASSWORD", ""),
            driver=os.getenv("QUERYKIT_DB_DRIVER", DEFAULT_DRIVER),
            port=int(port) if port else None,
        )


def build_url(settings: ConnectionSettings, database: str) -> URL:
    """
    Собирает SQLAlchemy URL для базы `database`.
    Если задан BASE_DSN, он имеет приоритет: URL = BASE_DSN + database.
    """
    base_dsn = os.getenv("BASE_DSN")
    if base_dsn:
        return make_url(f"{base_dsn}{database}")

    return URL.create(
        settings.driver,
        username=settings.user or None,
        password=settings.password or None,
        host=settings.host or None,
        port=settings.port,
        database=database or None,
    )


def get_engine(url: URL) -> Engine:
    """
    Возвращает (или создаёт) SQLAlchemy Engine для конкретного URL.
    """
    key = url.render_as_string(hide_password=False)
    if key in _engines:
        return _engines[key]

    connect_args = {}
    if url.get_backend_name() == "postgresql":
        connect_args["connect_timeout"] = 5

    logger.debug("creating engine for %s", url.render_as_string(hide_password=True))
    engine = create_engine(
        url,
        echo=False,
        pool_pre_ping=True,             # пинг перед выдачей соединения из пула
        connect_args=connect_args,
    )
    _engines[key] = engine
    return engine


def test_connection(url: URL) -> bool:
    """
    Пинг базы: выполняет SELECT 1. Возвращает True/False.
    """
    shown = url.render_as_string(hide_password=True)
    try:
        eng = get_engine(url)
        t0 = time.perf_counter()
        with eng.connect() as conn:
            conn.execute(text("SELECT 1"))
        dt = (time.perf_counter() - t0) * 1000
        logger.info("OK  '%s' (%.1f ms)", shown, dt)
        return True
    except Exception as e:
        logger.warning("ERR '%s': %s", shown, e)
        return False


def dispose_engines() -> None:
    """Закрыть пулы всех закешированных движков и очистить кеш."""
    for engine in _engines.values():
        engine.dispose()
    _engines.clear()
