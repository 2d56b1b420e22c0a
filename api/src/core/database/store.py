"""Base class for Cassandra-backed stores.

Every storage call goes through ``CassandraStore._execute`` which bounds it
with the configured request deadline. Deadline overruns and driver
availability errors surface as ``StorageUnavailableError`` (HTTP 503) so the
caller may retry; query errors (bad CQL, type mismatches) propagate as-is.
"""

import asyncio
from typing import TYPE_CHECKING, Any

import structlog
from cassandra import OperationTimedOut, ReadTimeout, Unavailable, WriteTimeout
from cassandra.cluster import NoHostAvailable

from src.config import get_settings
from src.core.exceptions import StorageUnavailableError


if TYPE_CHECKING:
    from cassandra.cluster import Session


logger = structlog.get_logger(__name__)

STORAGE_UNAVAILABLE_ERRORS = (
    NoHostAvailable,
    OperationTimedOut,
    Unavailable,
    ReadTimeout,
    WriteTimeout,
)


class CassandraStore:
    """Shared plumbing for stores: prepared statements and timed execution."""

    def __init__(
        self,
        session: "Session",
        keyspace: str,
        request_timeout: float | None = None,
    ):
        self.session = session
        self.keyspace = keyspace
        self.request_timeout = (
            request_timeout
            if request_timeout is not None
            else get_settings().cassandra_request_timeout
        )
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements. Subclasses override."""

    async def _execute(self, statement: Any, params: list | None = None) -> Any:
        """Run a statement within the request deadline."""
        try:
            async with asyncio.timeout(self.request_timeout):
                if params is None:
                    return await self.session.aexecute(statement)
                return await self.session.aexecute(statement, params)
        except TimeoutError as e:
            logger.error(
                "storage_deadline_exceeded",
                store=type(self).__name__,
                timeout=self.request_timeout,
            )
            raise StorageUnavailableError() from e
        except STORAGE_UNAVAILABLE_ERRORS as e:
            logger.error(
                "storage_unavailable",
                store=type(self).__name__,
                error_type=type(e).__name__,
                error=str(e),
            )
            raise StorageUnavailableError() from e


def was_applied(result: Any) -> bool:
    """Whether a lightweight transaction (``IF ...``) was applied."""
    return bool(result.was_applied)
