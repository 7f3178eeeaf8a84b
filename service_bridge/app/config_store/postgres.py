"""
PostgreSQL persistence for the ``configs`` key/value table.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Tuple

import asyncpg

from shared.errors import ExternalServiceError
from shared.logging import get_logger
from shared.retry import RetryConfig, RetryError, retry_on_exception


# 5 connection attempts, 2 s apart.
CONNECT_RETRY = RetryConfig(
    max_attempts=5,
    base_delay=2.0,
    jitter=False,
    backoff_strategy="fixed",
)

CONNECT_EXCEPTIONS = (OSError, asyncio.TimeoutError, asyncpg.PostgresError)

ConfigDefaults = Mapping[str, Tuple[str, Optional[str]]]


class ConfigStore:
    """Persistent system configuration (API keys, gateway settings, mappings)."""

    def __init__(
        self,
        dsn: str,
        ssl: bool = True,
        *,
        min_size: int = 2,
        max_size: int = 10,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.dsn = dsn
        self.ssl = ssl
        self.min_size = min_size
        self.max_size = max_size
        self._sleep = sleep
        self.logger = get_logger("config_store.postgres")
        self.pool: Optional[asyncpg.Pool] = None

    async def start(self):
        """Open the pool (with retries) and create the table if needed."""

        @retry_on_exception(CONNECT_EXCEPTIONS, config=CONNECT_RETRY, sleep=self._sleep)
        async def connect() -> asyncpg.Pool:
            return await asyncpg.create_pool(
                self.dsn,
                min_size=self.min_size,
                max_size=self.max_size,
                command_timeout=30,
                ssl="require" if self.ssl else None,
            )

        try:
            self.pool = await connect()
        except RetryError as e:
            self.logger.error(
                "Failed to connect to config database",
                attempts=e.attempts,
                error=str(e.last_exception)
            )
            raise ExternalServiceError("postgres", f"Could not connect: {e.last_exception}") from e

        await self._create_tables()
        self.logger.info("Config store started")

    async def stop(self):
        if self.pool:
            await self.pool.close()
            self.pool = None
            self.logger.info("Config store stopped")

    async def _create_tables(self):
        async with self._acquire() as conn:
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS configs (
                    id SERIAL PRIMARY KEY,
                    key VARCHAR(255) UNIQUE NOT NULL,
                    value TEXT NOT NULL,
                    description TEXT,
                    createdat TIMESTAMP DEFAULT NOW(),
                    updatedat TIMESTAMP DEFAULT NOW()
                );
            """)

    def _acquire(self):
        if self.pool is None:
            raise ExternalServiceError("postgres", "Config store is not started")
        return self.pool.acquire()

    async def get_config(self, key: str) -> Optional[str]:
        async with self._acquire() as conn:
            return await conn.fetchval("SELECT value FROM configs WHERE key = $1", key)

    async def get_all_configs(self) -> Dict[str, str]:
        async with self._acquire() as conn:
            rows = await conn.fetch("SELECT key, value FROM configs")
        return {row["key"]: row["value"] for row in rows}

    async def set_config(self, key: str, value: str, description: Optional[str] = None) -> None:
        """Insert or update ``key``; an omitted description keeps the stored one."""
        async with self._acquire() as conn:
            await conn.execute("""
                INSERT INTO configs (key, value, description)
                VALUES ($1, $2, $3)
                ON CONFLICT (key) DO UPDATE SET
                    value = EXCLUDED.value,
                    description = COALESCE(EXCLUDED.description, configs.description),
                    updatedat = NOW()
            """, key, value, description)

        self.logger.info("Config saved", key=key)

    async def count_configs(self) -> int:
        async with self._acquire() as conn:
            return await conn.fetchval("SELECT COUNT(*) FROM configs")

    async def seed_defaults(self, defaults: ConfigDefaults) -> int:
        """Insert missing keys; empty values and existing keys are left alone.

        Returns:
            Number of rows created
        """
        created = 0
        async with self._acquire() as conn:
            for key, (value, description) in defaults.items():
                if not value:
                    continue
                row_id = await conn.fetchval("""
                    INSERT INTO configs (key, value, description)
                    VALUES ($1, $2, $3)
                    ON CONFLICT (key) DO NOTHING
                    RETURNING id
                """, key, value, description)
                if row_id is not None:
                    created += 1
                    self.logger.info("Default config created", key=key)
        return created

    async def check_health(self) -> bool:
        try:
            async with self._acquire() as conn:
                await conn.fetchval("SELECT 1")
            return True
        except Exception as e:
            self.logger.warning("Config store health check failed", error=str(e))
            return False
