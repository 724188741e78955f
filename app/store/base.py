"""
Record store interface.

Documents are plain dicts keyed by snake_case field name. Four operations:
create, get, update (sparse patch) and query. No transactions; callers
tolerate at-least-once writes.
"""

from typing import Iterable, Protocol

LINKS = "links"
RELEASES = "releases"
VISITS = "visits"

COLLECTIONS = (LINKS, RELEASES, VISITS)


class StoreError(Exception):
    """Base class for record store failures."""


class RecordNotFoundError(StoreError):
    def __init__(self, collection: str, record_id: str):
        super().__init__(f"{collection}/{record_id} not found")
        self.collection = collection
        self.record_id = record_id


class UnknownCollectionError(StoreError):
    def __init__(self, collection: str):
        super().__init__(f"Unknown collection: {collection}")
        self.collection = collection


class RecordStore(Protocol):
    async def create(self, collection: str, fields: dict) -> str:
        """Insert a document, returning its id (generated when absent)."""
        ...

    async def get(self, collection: str, record_id: str) -> dict | None:
        ...

    async def update(self, collection: str, record_id: str, patch: dict) -> None:
        """Write only the named fields. RecordNotFoundError if missing."""
        ...

    async def query(
        self,
        collection: str,
        filters: dict | None = None,
        *,
        present: Iterable[str] = (),
        absent: Iterable[str] = (),
        limit: int | None = None,
    ) -> list[dict]:
        """
        Equality filters plus field-existence filters.

        `present`: field must hold a non-empty value.
        `absent`: field must be missing or empty.
        """
        ...

    async def find_by_slug(self, collection: str, slug: str) -> dict | None:
        ...

    async def close(self) -> None:
        ...


def is_empty(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())
