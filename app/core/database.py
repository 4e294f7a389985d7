import asyncio
import logging
from functools import wraps
from typing import Any, AsyncGenerator, Callable, Optional, TypeVar
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.sql import text
from sqlalchemy.exc import (
    SQLAlchemyError,
    OperationalError,
    DisconnectionError,
    TimeoutError,
)
from asyncpg.exceptions import (
    ConnectionFailureError,
    ConnectionDoesNotExistError,
)

from .config import (
    DATABASE_URL,
    DB_RETRY_ATTEMPTS,
    DB_RETRY_BACKOFF_FACTOR,
    DB_RETRY_DELAY,
)
from .exceptions import DatabaseConnectionError, DatabaseTimeoutError

logger = logging.getLogger(__name__)


def _engine_options(url: str) -> dict:
    """Параметры пула имеют смысл только для серверных БД"""
    if url.startswith("sqlite"):
        return {"echo": False}
    return {
        "echo": False,  # Отключаем echo в production
        "pool_size": 20,
        "max_overflow": 10,
        "pool_timeout": 30,
        "pool_recycle": 3600,  # Переподключение каждый час
        "pool_pre_ping": True,  # Проверка соединения перед использованием
    }


engine = create_async_engine(DATABASE_URL, **_engine_options(DATABASE_URL))

async_session = sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,  # Отключаем автофлаш для лучшего контроля
)

Base = declarative_base()

F = TypeVar("F", bound=Callable[..., Any])

# Ошибки, после которых имеет смысл повторить операцию
RETRYABLE_ERRORS = (
    OperationalError,
    DisconnectionError,
    TimeoutError,
    ConnectionFailureError,
    ConnectionDoesNotExistError,
    OSError,
)


def db_retry(
    max_attempts: Optional[int] = None,
    delay: Optional[float] = None,
    backoff_factor: Optional[float] = None,
) -> Callable[[F], F]:
    """
    Повтор операции при сбое соединения с экспоненциальной задержкой.

    После последней попытки сетевые ошибки превращаются в
    DatabaseConnectionError, таймауты в DatabaseTimeoutError.
    """
    attempts = max_attempts or DB_RETRY_ATTEMPTS
    first_delay = DB_RETRY_DELAY if delay is None else delay
    factor = backoff_factor or DB_RETRY_BACKOFF_FACTOR

    def decorator(func: F) -> F:
        @wraps(func)
        async def wrapper(*args, **kwargs):
            wait = first_delay
            for attempt in range(1, attempts + 1):
                try:
                    return await func(*args, **kwargs)
                except RETRYABLE_ERRORS as e:
                    if attempt == attempts:
                        logger.error(
                            f"{func.__name__} failed after {attempts} attempts: {str(e)}",
                            extra={"function": func.__name__, "exception_type": type(e).__name__},
                        )
                        if isinstance(e, TimeoutError):
                            raise DatabaseTimeoutError(func.__name__, 30)
                        raise DatabaseConnectionError(
                            f"Database connection failed after {attempts} attempts"
                        )

                    logger.warning(
                        f"{func.__name__} failed (attempt {attempt}/{attempts}), "
                        f"retrying in {wait:.1f}s: {str(e)}",
                        extra={"function": func.__name__, "attempt": attempt},
                    )
                    await asyncio.sleep(wait)
                    wait *= factor

        return wrapper

    return decorator


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Dependency: одна сессия на запрос"""
    async with async_session() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


class DatabaseManager:
    """Создание схемы и проверка доступности БД при старте"""

    @staticmethod
    @db_retry()
    async def create_tables():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created/verified")

    @staticmethod
    @db_retry()
    async def check_connection() -> bool:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True

    @staticmethod
    async def close_connections():
        try:
            await engine.dispose()
            logger.info("Database connections closed")
        except SQLAlchemyError as e:
            logger.error(f"Error closing database connections: {str(e)}")


db_manager = DatabaseManager()


def db_operation(func: F) -> F:
    """
    Декоратор для CRUD операций: логирует ошибки SQLAlchemy
    и пробрасывает их дальше
    """

    @wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except SQLAlchemyError as e:
            logger.error(
                f"SQLAlchemy error in {func.__name__}: {str(e)}",
                extra={"operation": func.__name__, "exception_type": type(e).__name__},
            )
            raise

    return wrapper
