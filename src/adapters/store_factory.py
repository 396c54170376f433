"""Factory for creating document store instances."""

from src.adapters.postgres_document_store import PostgresDocumentStore
from src.adapters.postgres_pool import PostgresConnectionPool
from src.adapters.sqlite_document_store import SQLiteDocumentStore
from src.config.logging_config import get_logger
from src.config.settings import Settings
from src.domain.clock import Clock, utc_now
from src.domain.exceptions import ConfigurationError
from src.ports.document_store import DocumentStorePort

logger = get_logger(__name__)


def create_document_store(settings: Settings, *, clock: Clock = utc_now) -> DocumentStorePort:
    """Create the document store selected by ``settings.database_type``.

    Raises:
        ConfigurationError: Unsupported type or missing PostgreSQL password
        RepositoryError: On connection errors
    """
    if settings.database_type == "sqlite":
        logger.info("document_store_sqlite_selected", path=settings.db_path)
        return SQLiteDocumentStore(settings.db_path, clock=clock)

    if settings.database_type == "postgres":
        if not settings.postgres_password:
            raise ConfigurationError(
                "POSTGRES_PASSWORD environment variable must be set when using PostgreSQL"
            )

        logger.info(
            "document_store_postgres_selected",
            host=settings.postgres_host,
            port=settings.postgres_port,
            database=settings.postgres_database,
            user=settings.postgres_user,
        )
        pool = PostgresConnectionPool(
            host=settings.postgres_host,
            port=settings.postgres_port,
            database=settings.postgres_database,
            user=settings.postgres_user,
            password=settings.postgres_password.get_secret_value(),
            min_connections=settings.postgres_min_connections,
            max_connections=settings.postgres_max_connections,
            statement_timeout_ms=settings.postgres_statement_timeout_ms,
            connect_timeout_seconds=settings.postgres_connect_timeout_seconds,
            application_name=settings.postgres_application_name,
            ssl_mode=settings.postgres_ssl_mode,
        )
        store = PostgresDocumentStore(pool.connection, clock=clock)
        store.ensure_schema()
        return store

    raise ConfigurationError(
        f"Unsupported database type: {settings.database_type}. "
        f"Must be 'sqlite' or 'postgres'"
    )


__all__ = ["create_document_store"]
