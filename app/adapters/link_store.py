"""
Link Store Adapter for the Affiliate Link Pipeline.

Abstract store plus two implementations: in-memory (tests, single process)
and a JSON file backend for local use. Every mutation runs under one lock so
click increments are applied atomically.
"""
import asyncio
import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

from app.models.errors import PersistenceError
from app.models.link import Link, new_link_id, utc_now
from app.utils.logger import LayerLogger


class LinkStore(ABC):
    """Persistence contract consumed by the lifecycle manager and reconciliation job."""

    @abstractmethod
    async def get(self, link_id: str) -> Optional[Link]:
        ...

    @abstractmethod
    async def create(self, link: Link) -> Link:
        ...

    @abstractmethod
    async def update(self, link_id: str, changes: Dict[str, Any]) -> Optional[Link]:
        """Apply a partial update. Returns None when the id does not exist."""

    @abstractmethod
    async def delete(self, link_id: str) -> bool:
        ...

    @abstractmethod
    async def list_all(self) -> List[Link]:
        ...

    @abstractmethod
    async def list_active(self) -> List[Link]:
        ...

    @abstractmethod
    async def find_by_source_and_active(self, source: Optional[str], is_active: bool) -> List[Link]:
        ...

    @abstractmethod
    async def increment_clicks(self, link_id: str) -> Optional[Link]:
        """Atomically add one click. Returns None when the id does not exist."""


class InMemoryLinkStore(LinkStore):
    """Dict-backed store. Ids, once issued, are never handed out again."""

    def __init__(self):
        self._links: Dict[str, Link] = {}
        self._issued_ids: Set[str] = set()
        self._lock = asyncio.Lock()
        self.logger = LayerLogger("link_store")

    async def _persist(self) -> None:
        """Hook for durable subclasses; called inside the lock after each mutation."""

    async def _commit(self, link_id: str, link: Optional[Link]) -> None:
        """Swap one entry, persist, and roll the entry back if persisting fails."""
        previous = self._links.get(link_id)
        if link is None:
            self._links.pop(link_id, None)
        else:
            self._links[link_id] = link
        try:
            await self._persist()
        except PersistenceError:
            if previous is None:
                self._links.pop(link_id, None)
            else:
                self._links[link_id] = previous
            raise

    async def get(self, link_id: str) -> Optional[Link]:
        link = self._links.get(link_id)
        return link.model_copy(deep=True) if link else None

    async def create(self, link: Link) -> Link:
        async with self._lock:
            while link.id in self._issued_ids:
                link = link.model_copy(update={"id": new_link_id()})
            self._issued_ids.add(link.id)
            await self._commit(link.id, link)
        self.logger.log_action("create_link", "completed", link_id=link.id)
        return link.model_copy(deep=True)

    async def update(self, link_id: str, changes: Dict[str, Any]) -> Optional[Link]:
        async with self._lock:
            current = self._links.get(link_id)
            if current is None:
                return None
            data = current.model_dump()
            data.update(changes)
            data["id"] = link_id
            if "updated_at" not in changes:
                data["updated_at"] = utc_now()
            updated = Link.model_validate(data)
            await self._commit(link_id, updated)
        return updated.model_copy(deep=True)

    async def delete(self, link_id: str) -> bool:
        async with self._lock:
            if link_id not in self._links:
                return False
            await self._commit(link_id, None)
        return True

    async def list_all(self) -> List[Link]:
        links = sorted(self._links.values(), key=lambda l: l.created_at, reverse=True)
        return [l.model_copy(deep=True) for l in links]

    async def list_active(self) -> List[Link]:
        return [l for l in await self.list_all() if l.is_active]

    async def find_by_source_and_active(self, source: Optional[str], is_active: bool) -> List[Link]:
        return [
            l for l in await self.list_all()
            if l.is_active == is_active and (source is None or l.source == source)
        ]

    async def increment_clicks(self, link_id: str) -> Optional[Link]:
        async with self._lock:
            current = self._links.get(link_id)
            if current is None:
                return None
            now = utc_now()
            updated = current.model_copy(update={
                "clicks": current.clicks + 1,
                "last_clicked_at": now,
                "updated_at": now,
            })
            await self._commit(link_id, updated)
        return updated.model_copy(deep=True)


def _read_json(path: Path) -> Dict[str, Any]:
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def _write_json(path: Path, data: Dict[str, Any]) -> None:
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    with open(tmp_path, "w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, indent=2)
    tmp_path.replace(path)


class JsonFileLinkStore(InMemoryLinkStore):
    """
    JSON file backed store for local development.

    The whole collection is rewritten after each mutation.
    """

    def __init__(self, path: Path):
        super().__init__()
        self.path = Path(path)
        self._loaded = False

    async def load(self) -> None:
        """Read the file once; a missing file is an empty store."""
        if self._loaded:
            return
        if self.path.exists():
            try:
                data = await asyncio.to_thread(_read_json, self.path)
            except (OSError, ValueError) as e:
                raise PersistenceError(f"could not read link store: {e}") from e
            self._links = {
                item["id"]: Link.model_validate(item) for item in data.get("links", [])
            }
            self._issued_ids = set(data.get("issued_ids", [])) | set(self._links)
        self._loaded = True
        self.logger.log_action("load_links", "completed", path=str(self.path), count=len(self._links))

    async def _persist(self) -> None:
        payload = {
            "links": [link.model_dump(mode="json") for link in self._links.values()],
            "issued_ids": sorted(self._issued_ids),
        }
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            await asyncio.to_thread(_write_json, self.path, payload)
        except OSError as e:
            self.logger.log_error(f"Failed to write link store: {e}", error_type="persistence_error")
            raise PersistenceError(f"could not write link store: {e}") from e
