"""Repository wrapper that turns storage failures into ``StorageError``."""

from typing import Any

from recsys.core.errors import RecsysError, StorageError
from recsys.logging import get_logger
from recsys.storage.repository import InMemoryRepository, Repository

logger = get_logger(__name__)


class GuardedRepository:
    """Delegates to a repository and converts its exceptions to ``StorageError``.

    Components hold one of these so that a driver error (for example a
    SQLAlchemy ``OperationalError``) never escapes a public entry point raw.
    """

    def __init__(self, repository: Repository) -> None:
        self.inner = repository

    @classmethod
    def wrap(cls, repository: Repository | None) -> "GuardedRepository":
        if isinstance(repository, cls):
            return repository
        return cls(repository if repository is not None else InMemoryRepository())

    def _fail(self, operation: str, namespace: str, key: str | None, e: Exception) -> StorageError:
        logger.error(
            f"Repository {operation} failed: namespace={namespace} key={key} "
            f"error={type(e).__name__}: {e}"
        )
        return StorageError(operation, namespace, key, cause=e)

    async def get(self, namespace: str, key: str) -> dict[str, Any] | None:
        try:
            return await self.inner.get(namespace, key)
        except RecsysError:
            raise
        except Exception as e:
            raise self._fail("get", namespace, key, e) from e

    async def put(self, namespace: str, key: str, value: dict[str, Any]) -> None:
        try:
            await self.inner.put(namespace, key, value)
        except RecsysError:
            raise
        except Exception as e:
            raise self._fail("put", namespace, key, e) from e

    async def delete(self, namespace: str, key: str) -> bool:
        try:
            return await self.inner.delete(namespace, key)
        except RecsysError:
            raise
        except Exception as e:
            raise self._fail("delete", namespace, key, e) from e

    async def scan(self, namespace: str) -> list[tuple[str, dict[str, Any]]]:
        try:
            return await self.inner.scan(namespace)
        except RecsysError:
            raise
        except Exception as e:
            raise self._fail("scan", namespace, None, e) from e

    async def count(self, namespace: str) -> int:
        try:
            return await self.inner.count(namespace)
        except RecsysError:
            raise
        except Exception as e:
            raise self._fail("count", namespace, None, e) from e

    async def close(self) -> None:
        await self.inner.close()
