"""Read-only accessor for the Supabase (PostgREST) record collections."""

from __future__ import annotations

import enum
import logging
from typing import Any, Dict, List, Optional

import httpx

from .errors import RecordSourceError

logger = logging.getLogger(__name__)

TIMEOUT = httpx.Timeout(15.0, connect=5.0)

Record = Dict[str, Any]


class Collection(str, enum.Enum):
    """Remote collections, with the short tag used in inline action tokens."""

    APPLICATIONS = "Applications"
    CALLBACKS = "CallBacks"

    @property
    def tag(self) -> str:
        return _TAGS[self]

    @classmethod
    def from_tag(cls, tag: str) -> Optional["Collection"]:
        for coll, t in _TAGS.items():
            if t == tag:
                return coll
        return None


_TAGS = {Collection.APPLICATIONS: "app", Collection.CALLBACKS: "cb"}


class RecordSource:
    """Stateless client: every call goes to the network, nothing is cached.

    Both the ``apikey`` header and the bearer token carry the same key, which is
    how Supabase expects an anonymous key to be presented.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._headers = {"apikey": api_key, "Authorization": f"Bearer {api_key}"}
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout, connect=5.0) if timeout else TIMEOUT
        )

    def _url(self, collection: Collection) -> str:
        return f"{self.base_url}/rest/v1/{collection.value}"

    async def _fetch(self, collection: Collection, params: Dict[str, str]) -> List[Record]:
        try:
            resp = await self._client.get(self._url(collection), params=params, headers=self._headers)
            resp.raise_for_status()
            rows = resp.json()
        except httpx.HTTPStatusError as e:
            raise RecordSourceError(
                f"{collection.value}: HTTP {e.response.status_code}: {e.response.text[:200]}"
            ) from e
        except httpx.HTTPError as e:
            raise RecordSourceError(f"{collection.value}: {type(e).__name__}: {e}") from e
        except ValueError as e:
            raise RecordSourceError(f"{collection.value}: response is not JSON") from e

        if not isinstance(rows, list) or not all(isinstance(r, dict) for r in rows):
            raise RecordSourceError(f"{collection.value}: expected a list of rows")
        return rows

    async def list(self, collection: Collection, order_by: str = "id.asc") -> List[Record]:
        """Return every row of ``collection`` ordered by ``order_by``."""
        return await self._fetch(collection, {"select": "*", "order": order_by})

    async def get(self, collection: Collection, record_id: int) -> Optional[Record]:
        """Return the row with ``id == record_id`` or None when it does not exist."""
        rows = await self._fetch(collection, {"id": f"eq.{int(record_id)}", "select": "*"})
        return rows[0] if rows else None

    async def aclose(self) -> None:
        await self._client.aclose()
