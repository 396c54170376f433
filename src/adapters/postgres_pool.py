"""PostgreSQL connection pooling using psycopg2."""

from collections.abc import Iterator
from contextlib import contextmanager
from threading import Lock
from time import sleep
from typing import Any, Final

from psycopg2 import Error as PsycopgError
from psycopg2 import extensions
from psycopg2 import pool as psycopg2_pool

from src.config.logging_config import get_logger
from src.domain.exceptions import RepositoryError

POOL_ACQUIRE_MAX_ATTEMPTS_DEFAULT: Final[int] = 5
POOL_ACQUIRE_BASE_DELAY_SECONDS: Final[float] = 0.1
POOL_ACQUIRE_MAX_DELAY_SECONDS: Final[float] = 2.0
POOL_USAGE_WARNING_THRESHOLD: Final[float] = 0.8

logger = get_logger(__name__)


class PostgresConnectionPool:
    """Threaded psycopg2 pool with acquire retries and usage tracking."""

    def __init__(
        self,
        *,
        host: str,
        port: int,
        database: str,
        user: str,
        password: str,
        min_connections: int = 1,
        max_connections: int = 10,
        statement_timeout_ms: int = 10_000,
        connect_timeout_seconds: int = 10,
        application_name: str = "hooked_notifications",
        ssl_mode: str | None = None,
    ) -> None:
        if min_connections <= 0:
            raise RepositoryError("postgres_min_connections must be positive")
        if max_connections < min_connections:
            raise RepositoryError(
                "postgres_max_connections must be greater than or equal to postgres_min_connections"
            )

        self._database = database
        self._max_connections = max_connections
        self._in_use = 0
        self._high_watermark = 0
        self._usage_warning_emitted = False
        self._lock = Lock()

        options = (
            f"-c statement_timeout={statement_timeout_ms} "
            f"-c application_name={application_name}"
        )
        conn_kwargs: dict[str, Any] = {
            "host": host,
            "port": port,
            "database": database,
            "user": user,
            "password": password,
            "connect_timeout": connect_timeout_seconds,
            "options": options,
        }
        if ssl_mode:
            conn_kwargs["sslmode"] = ssl_mode

        try:
            self._pool = psycopg2_pool.ThreadedConnectionPool(
                min_connections, max_connections, **conn_kwargs
            )
        except PsycopgError as exc:
            raise RepositoryError(
                f"Failed to initialize PostgreSQL pool: {exc}"
            ) from exc

        logger.info(
            "postgres_pool_initialized",
            host=host,
            port=port,
            database=database,
            min_connections=min_connections,
            max_connections=max_connections,
            statement_timeout_ms=statement_timeout_ms,
        )

    @contextmanager
    def connection(self) -> Iterator[extensions.connection]:
        """Borrow a connection from the pool and ensure cleanup."""
        conn = self._acquire_with_retry()
        broken = False
        try:
            conn.autocommit = False
            yield conn
        except PsycopgError as exc:
            broken = bool(getattr(conn, "closed", 0))
            try:
                conn.rollback()
            except PsycopgError:
                broken = True
                logger.warning("postgres_connection_rollback_failed", exc_info=True)
            raise RepositoryError(f"PostgreSQL operation failed: {exc}") from exc
        except BaseException:
            try:
                conn.rollback()
            except PsycopgError:
                broken = True
            raise
        finally:
            self._release(conn, close=broken)

    def close(self) -> None:
        """Close all connections in the pool."""
        self._pool.closeall()
        with self._lock:
            self._in_use = 0
            self._usage_warning_emitted = False
        logger.info(
            "postgres_pool_closed",
            database=self._database,
            high_watermark=self._high_watermark,
        )

    def _acquire_with_retry(self) -> extensions.connection:
        attempt = 0
        delay = POOL_ACQUIRE_BASE_DELAY_SECONDS
        while True:
            attempt += 1
            try:
                conn = self._pool.getconn()
            except psycopg2_pool.PoolError as exc:
                if attempt >= POOL_ACQUIRE_MAX_ATTEMPTS_DEFAULT:
                    logger.error(
                        "postgres_pool_acquire_failed",
                        attempts=attempt,
                        max_connections=self._max_connections,
                        in_use=self._in_use,
                    )
                    raise RepositoryError(
                        "Failed to acquire PostgreSQL connection from pool"
                    ) from exc

                logger.warning(
                    "postgres_pool_exhausted_retry",
                    attempt=attempt,
                    wait_seconds=delay,
                    in_use=self._in_use,
                )
                sleep(delay)
                delay = min(delay * 2, POOL_ACQUIRE_MAX_DELAY_SECONDS)
                continue

            self._register_checkout()
            return conn

    def _register_checkout(self) -> None:
        with self._lock:
            self._in_use += 1
            if self._in_use > self._high_watermark:
                self._high_watermark = self._in_use

            usage_ratio = self._in_use / self._max_connections
            if (
                usage_ratio >= POOL_USAGE_WARNING_THRESHOLD
                and not self._usage_warning_emitted
            ):
                self._usage_warning_emitted = True
                logger.warning(
                    "postgres_pool_usage_high",
                    in_use=self._in_use,
                    max_connections=self._max_connections,
                )

    def _release(self, conn: extensions.connection, *, close: bool) -> None:
        try:
            self._pool.putconn(conn, close=close)
        except PsycopgError:
            logger.warning("postgres_putconn_failed", close=close, exc_info=True)
        finally:
            with self._lock:
                if self._in_use > 0:
                    self._in_use -= 1
                if self._in_use / self._max_connections < POOL_USAGE_WARNING_THRESHOLD:
                    self._usage_warning_emitted = False


__all__ = ["PostgresConnectionPool"]
