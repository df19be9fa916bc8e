"""Jellyfin API client (catalogue cible)."""
import base64
import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx

from mediabridge.config import JellyfinConfig, get_config
from mediabridge.core.errors import CatalogError, ConfigurationError
from mediabridge.core.models import CatalogEntity, CollectionSpec, MediaKind, TargetCollection, WatchState
from mediabridge.utils.http_client import RobustHTTPClient, get_http_client

logger = logging.getLogger(__name__)

TICKS_PER_SECOND = 10_000_000

ITEM_FIELDS = "ProviderIds,ProductionYear,SortName,Overview"

_ITEM_TYPES = {
    MediaKind.MOVIE: "Movie",
    MediaKind.SERIES: "Series",
    MediaKind.SEASON: "Season",
    MediaKind.EPISODE: "Episode",
}
_KINDS = {value: key for key, value in _ITEM_TYPES.items()}


def to_entity(item: Dict[str, Any]) -> Optional[CatalogEntity]:
    """BaseItemDto -> CatalogEntity (None pour les types non gérés)."""
    kind = _KINDS.get(item.get("Type"))
    if kind is None or not item.get("Id"):
        return None
    return CatalogEntity(
        internal_id=item["Id"],
        title=item.get("Name") or "",
        kind=kind,
        year=item.get("ProductionYear"),
        external_ids=item.get("ProviderIds") or {},
        parent_id=item.get("SeriesId") if kind == MediaKind.EPISODE else item.get("ParentId"),
        parent_title=item.get("SeriesName"),
        sort_title=item.get("SortName"),
        season_number=item.get("ParentIndexNumber"),
        episode_number=item.get("IndexNumber"),
    )


class JellyfinService:
    """Service pour interagir avec Jellyfin via son API REST."""

    def __init__(self, jellyfin_config: Optional[JellyfinConfig] = None, http_client: Optional[RobustHTTPClient] = None):
        jellyfin_config = jellyfin_config or get_config().jellyfin
        if not jellyfin_config.url or not jellyfin_config.api_key:
            raise ConfigurationError("Jellyfin url and api_key are required")
        self.base_url = jellyfin_config.url.rstrip("/")
        self.api_key = jellyfin_config.api_key
        self.timeout = jellyfin_config.timeout
        self.http_client = http_client or get_http_client()

    def _get_headers(self) -> Dict[str, str]:
        return {"X-Emby-Token": self.api_key, "Accept": "application/json"}

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
        content: Optional[bytes] = None,
        content_type: Optional[str] = None,
    ) -> httpx.Response:
        headers = self._get_headers()
        if content_type:
            headers["Content-Type"] = content_type
        try:
            return await self.http_client.request_async(
                method,
                f"{self.base_url}{path}",
                "jellyfin",
                headers=headers,
                params=params,
                json=json,
                content=content,
                timeout=self.timeout,
            )
        except httpx.HTTPError as e:
            raise CatalogError(f"Jellyfin {method} {path} failed: {e}", service="jellyfin") from e

    async def _query_items(self, **params: Any) -> List[Dict[str, Any]]:
        query = {"Recursive": "true", "Fields": ITEM_FIELDS}
        query.update({key: value for key, value in params.items() if value is not None})
        response = await self._request("GET", "/Items", params=query)
        return response.json().get("Items") or []

    # Catalog

    async def list_catalog(self, kinds: Sequence[MediaKind]) -> List[CatalogEntity]:
        item_types = ",".join(_ITEM_TYPES[kind] for kind in kinds)
        raw = await self._query_items(IncludeItemTypes=item_types)
        items = [entity for entity in (to_entity(item) for item in raw) if entity]
        logger.info(f"Fetched {len(items)} Jellyfin items ({item_types})")
        return items

    async def find_by_title(self, title: str) -> List[CatalogEntity]:
        if not title:
            return []
        raw = await self._query_items(searchTerm=title, IncludeItemTypes="Movie,Series,Episode")
        return [entity for entity in (to_entity(item) for item in raw) if entity]

    # Collections

    async def find_collections(self, title: str) -> List[TargetCollection]:
        raw = await self._query_items(searchTerm=title, IncludeItemTypes="BoxSet")
        wanted = title.strip().lower()
        return [
            TargetCollection(id=item["Id"], title=item.get("Name") or "")
            for item in raw
            if (item.get("Name") or "").strip().lower() == wanted
        ]

    async def create_collection(self, spec: CollectionSpec, item_ids: List[str]) -> str:
        response = await self._request(
            "POST",
            "/Collections",
            params={"name": spec.title, "ids": ",".join(item_ids), "isLocked": "true"},
        )
        collection_id = (response.json() or {}).get("Id")
        if not collection_id:
            raise CatalogError(f"Jellyfin returned no ID for collection '{spec.title}'", service="jellyfin")
        logger.info(f"Created Jellyfin collection '{spec.title}' ({collection_id}) with {len(item_ids)} items")
        return collection_id

    async def delete_collection(self, collection_id: str) -> None:
        await self._request("DELETE", f"/Items/{collection_id}")
        logger.info(f"Deleted Jellyfin collection {collection_id}")

    async def _get_item(self, item_id: str) -> Dict[str, Any]:
        items = await self._query_items(Ids=item_id)
        if not items:
            raise CatalogError(f"Jellyfin item {item_id} not found", service="jellyfin")
        return items[0]

    async def _update_item(self, item_id: str, **fields: Any) -> None:
        item = await self._get_item(item_id)
        item.update(fields)
        await self._request("POST", f"/Items/{item_id}", json=item)

    async def rename_collection(self, collection_id: str, title: str) -> None:
        await self._update_item(collection_id, Name=title)

    async def update_collection_metadata(
        self, collection_id: str, summary: Optional[str], sort_title: Optional[str]
    ) -> None:
        fields: Dict[str, Any] = {}
        if summary:
            fields["Overview"] = summary
        if sort_title:
            fields["ForcedSortName"] = sort_title
            fields["SortName"] = sort_title
        if fields:
            await self._update_item(collection_id, **fields)

    async def attach_artwork(self, item_id: str, image_bytes: bytes, slot: str) -> None:
        # Jellyfin expects the image base64-encoded in the body
        await self._request(
            "POST",
            f"/Items/{item_id}/Images/{slot}",
            content=base64.b64encode(image_bytes),
            content_type="image/jpeg",
        )

    # Users / watch state

    async def default_user_id(self) -> Optional[str]:
        response = await self._request("GET", "/Users")
        users = response.json() or []
        if not users:
            return None
        return users[0].get("Id")

    async def get_user_watch_state(self, user_id: str, item_id: str) -> Optional[WatchState]:
        try:
            response = await self._request("GET", f"/Users/{user_id}/Items/{item_id}")
        except CatalogError as e:
            if isinstance(e.__cause__, httpx.HTTPStatusError) and e.__cause__.response.status_code == 404:
                return None
            raise
        user_data = (response.json() or {}).get("UserData") or {}
        return WatchState(
            watched=bool(user_data.get("Played")),
            position_seconds=(user_data.get("PlaybackPositionTicks") or 0) / TICKS_PER_SECOND,
        )

    async def set_user_watch_state(self, user_id: str, item_id: str, state: WatchState) -> None:
        await self._request(
            "POST",
            f"/UserItems/{item_id}/UserData",
            params={"userId": user_id},
            json={
                "Played": state.watched,
                "PlaybackPositionTicks": int(state.position_seconds * TICKS_PER_SECOND),
            },
        )

    async def test_connection(self) -> str:
        """Retourne le nom du serveur (diagnostic)."""
        response = await self._request("GET", "/System/Info")
        return (response.json() or {}).get("ServerName") or "Jellyfin"
