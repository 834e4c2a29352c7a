"""Neo4j driver management with bounded, retried query execution."""

import asyncio
from typing import Any, Optional

from neo4j import AsyncDriver, AsyncGraphDatabase, AsyncSession
from neo4j.exceptions import Neo4jError, ServiceUnavailable, SessionExpired, TransientError

from quest_core.core.config import settings
from quest_core.core.exceptions import GraphStoreError, GraphStoreTimeoutError
from quest_core.utils.logging import get_logger

LOGGER = get_logger(__name__)

RETRYABLE_ERRORS = (ServiceUnavailable, SessionExpired, TransientError)


class Neo4jClientManager:
    """Owns the process-wide driver and runs queries against it."""

    _driver: Optional[AsyncDriver] = None

    # Labels whose nodes are keyed by the relational id
    NODE_LABELS = ["User", "Company", "Skill", "Institution", "Role"]

    @classmethod
    async def get_driver(cls) -> AsyncDriver:
        if not settings.neo4j.enabled:
            raise GraphStoreError("Graph store is disabled")
        if cls._driver is None:
            cls._driver = AsyncGraphDatabase.driver(
                settings.neo4j.uri,
                auth=(settings.neo4j.username, settings.neo4j.password),
                connection_timeout=settings.neo4j.query_timeout,
            )
            LOGGER.info("Neo4j driver initialized", extra={"uri": settings.neo4j.uri})
        return cls._driver

    @classmethod
    async def close(cls) -> None:
        if cls._driver:
            await cls._driver.close()
            cls._driver = None
            LOGGER.info("Neo4j driver closed")

    @classmethod
    async def get_session(cls, database: Optional[str] = None) -> AsyncSession:
        driver = await cls.get_driver()
        return driver.session(database=database or settings.neo4j.database)

    @classmethod
    async def ensure_constraints(cls) -> None:
        """Create one uniqueness constraint on ``id`` per projected label."""
        for label in cls.NODE_LABELS:
            name = f"constraint_{label.lower()}_id_unique"
            cypher = f"CREATE CONSTRAINT {name} IF NOT EXISTS FOR (n:{label}) REQUIRE n.id IS UNIQUE"
            try:
                await cls.execute_write_query(cypher)
                LOGGER.info(f"Ensured constraint for {label}", extra={"constraint": name})
            except GraphStoreError as e:
                LOGGER.error(f"Failed to create constraint for {label}: {e}")

    @classmethod
    async def _with_timeout(cls, coro, query: str, timeout: Optional[float]):
        budget = timeout if timeout is not None else settings.neo4j.query_timeout
        try:
            return await asyncio.wait_for(coro, timeout=budget)
        except asyncio.TimeoutError as e:
            LOGGER.error(
                f"Neo4j query exceeded {budget}s",
                extra={"query": query[:100], "timeout": budget},
            )
            raise GraphStoreTimeoutError(f"Graph query timed out after {budget}s", original_error=e) from e

    @classmethod
    async def _run_with_retry(cls, work, query: str, max_retries: Optional[int], retry_delay: float):
        attempts = max_retries or settings.neo4j.max_retries
        for attempt in range(attempts):
            try:
                return await work()
            except RETRYABLE_ERRORS as e:
                if attempt == attempts - 1:
                    LOGGER.error(
                        f"Neo4j query failed after {attempts} attempts",
                        extra={"query": query[:100], "error": str(e), "attempts": attempts},
                    )
                    raise GraphStoreError("Graph store unavailable", original_error=e) from e

                wait_time = retry_delay * (2**attempt)
                LOGGER.warning(
                    f"Neo4j transient error, retrying in {wait_time}s",
                    extra={"attempt": attempt + 1, "max_retries": attempts, "error": str(e)},
                )
                await asyncio.sleep(wait_time)
            except Neo4jError as e:
                LOGGER.error(
                    "Neo4j query failed with non-transient error",
                    extra={"query": query[:100], "error": str(e), "error_type": type(e).__name__},
                )
                raise GraphStoreError(f"Graph query failed: {e}", original_error=e) from e
        return None

    @classmethod
    async def run_query(
        cls,
        query: str,
        parameters: dict[str, Any] | None = None,
        database: str | None = None,
        max_retries: int | None = None,
        retry_delay: float = 0.5,
        timeout: float | None = None,
    ) -> list[dict[str, Any]]:
        """Execute a Cypher query and return its records as dictionaries.

        Transient failures are retried with exponential backoff; the whole
        call, retries included, is bounded by ``timeout`` (defaults to
        ``NEO4J_QUERY_TIMEOUT``).

        Raises:
            GraphStoreTimeoutError: The time budget was exhausted
            GraphStoreError: Any other driver failure
        """
        parameters = parameters or {}

        async def work():
            async with await cls.get_session(database=database) as session:
                result = await session.run(query, parameters)
                return await result.data()

        records = await cls._with_timeout(
            cls._run_with_retry(work, query, max_retries, retry_delay), query, timeout
        )
        return records or []

    @classmethod
    async def run_read_query(
        cls,
        query: str,
        parameters: dict[str, Any] | None = None,
        database: str | None = None,
        timeout: float | None = None,
    ) -> list[dict[str, Any]]:
        """Execute a query inside a read transaction so the server refuses writes."""
        parameters = parameters or {}

        async def read_tx(tx):
            result = await tx.run(query, parameters)
            return await result.data()

        async def work():
            async with await cls.get_session(database=database) as session:
                return await session.execute_read(read_tx)

        records = await cls._with_timeout(cls._run_with_retry(work, query, None, 0.5), query, timeout)
        return records or []

    @classmethod
    async def execute_write_query(
        cls,
        query: str,
        parameters: dict[str, Any] | None = None,
        database: str | None = None,
        timeout: float | None = None,
    ) -> dict[str, int]:
        """Execute a write query and return the summary counters."""
        parameters = parameters or {}

        async def work():
            async with await cls.get_session(database=database) as session:
                result = await session.run(query, parameters)
                summary = await result.consume()
                return {
                    "nodes_created": summary.counters.nodes_created,
                    "relationships_created": summary.counters.relationships_created,
                    "properties_set": summary.counters.properties_set,
                    "nodes_deleted": summary.counters.nodes_deleted,
                    "relationships_deleted": summary.counters.relationships_deleted,
                }

        return await cls._with_timeout(cls._run_with_retry(work, query, None, 0.5), query, timeout)

    @classmethod
    async def health_check(cls) -> dict:
        if not settings.neo4j.enabled:
            return {"status": "disabled", "connected": False}
        try:
            await cls.run_query("RETURN 1 AS ok", max_retries=1)
            return {"status": "healthy", "connected": True}
        except GraphStoreError as e:
            return {"status": "unhealthy", "connected": False, "error": str(e)}


def get_graph_client() -> type[Neo4jClientManager]:
    """Dependency returning the graph client used by the sync manager."""
    return Neo4jClientManager


async def init_neo4j(ensure_constraints: bool = True) -> None:
    await Neo4jClientManager.get_driver()
    if ensure_constraints:
        await Neo4jClientManager.ensure_constraints()


async def close_neo4j() -> None:
    await Neo4jClientManager.close()
