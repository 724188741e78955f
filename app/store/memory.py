"""In-process record store. Same semantics as the SQL store; used in dev and tests."""

import copy
from typing import Iterable
from uuid import uuid4

from app.store.base import COLLECTIONS, RecordNotFoundError, UnknownCollectionError, is_empty


class MemoryRecordStore:
    def __init__(self):
        self._data: dict[str, dict[str, dict]] = {name: {} for name in COLLECTIONS}

    def _collection(self, collection: str) -> dict[str, dict]:
        try:
            return self._data[collection]
        except KeyError:
            raise UnknownCollectionError(collection) from None

    async def create(self, collection: str, fields: dict) -> str:
        docs = self._collection(collection)
        doc = {k: v for k, v in fields.items() if v is not None}
        doc.setdefault("id", uuid4().hex)
        docs[doc["id"]] = copy.deepcopy(doc)
        return doc["id"]

    async def get(self, collection: str, record_id: str) -> dict | None:
        doc = self._collection(collection).get(record_id)
        return copy.deepcopy(doc) if doc is not None else None

    async def update(self, collection: str, record_id: str, patch: dict) -> None:
        docs = self._collection(collection)
        if record_id not in docs:
            raise RecordNotFoundError(collection, record_id)
        for key, value in patch.items():
            if key == "id":
                continue
            if value is None:
                docs[record_id].pop(key, None)
            else:
                docs[record_id][key] = copy.deepcopy(value)

    async def query(
        self,
        collection: str,
        filters: dict | None = None,
        *,
        present: Iterable[str] = (),
        absent: Iterable[str] = (),
        limit: int | None = None,
    ) -> list[dict]:
        filters = filters or {}
        present = tuple(present)
        absent = tuple(absent)
        results = []
        for doc in self._collection(collection).values():
            if any(doc.get(k) != v for k, v in filters.items()):
                continue
            if any(is_empty(doc.get(k)) for k in present):
                continue
            if any(not is_empty(doc.get(k)) for k in absent):
                continue
            results.append(copy.deepcopy(doc))
            if limit is not None and len(results) >= limit:
                break
        return results

    async def find_by_slug(self, collection: str, slug: str) -> dict | None:
        matches = await self.query(collection, {"slug": slug}, limit=1)
        return matches[0] if matches else None

    async def close(self) -> None:
        pass
