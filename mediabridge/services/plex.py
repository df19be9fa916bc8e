"""Plex API client (catalogue source)."""
import asyncio
import logging
from typing import Any, Callable, List, Optional, TypeVar

import httpx
import requests
from plexapi.exceptions import NotFound, PlexApiException
from plexapi.server import PlexServer

from mediabridge.config import PlexConfig, get_config
from mediabridge.core.errors import CatalogError, ConfigurationError
from mediabridge.core.index import external_ids_from_guids
from mediabridge.core.models import (
    ArtworkRefs,
    CatalogEntity,
    CollectionSpec,
    LibraryRef,
    MediaKind,
    WatchState,
)
from mediabridge.utils.http_client import RobustHTTPClient, get_http_client

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Plex library types that can hold collections of movies/shows
SUPPORTED_SECTION_TYPES = ("movie", "show")

_KINDS = {
    "movie": MediaKind.MOVIE,
    "show": MediaKind.SERIES,
    "season": MediaKind.SEASON,
    "episode": MediaKind.EPISODE,
}


def _guid_values(item: Any) -> List[str]:
    values = [guid.id for guid in getattr(item, "guids", None) or [] if getattr(guid, "id", None)]
    legacy = getattr(item, "guid", None)
    if legacy:
        values.append(legacy)
    return values


def to_entity(item: Any) -> Optional[CatalogEntity]:
    """Convertit un objet plexapi (Movie/Show/Season/Episode) en CatalogEntity."""
    kind = _KINDS.get(getattr(item, "type", None))
    if kind is None:
        return None

    entity_kwargs = {}
    if kind == MediaKind.EPISODE:
        entity_kwargs = dict(
            parent_id=str(item.grandparentRatingKey) if getattr(item, "grandparentRatingKey", None) else None,
            parent_title=getattr(item, "grandparentTitle", None),
            season_number=getattr(item, "parentIndex", None),
            episode_number=getattr(item, "index", None),
        )
    elif kind == MediaKind.SEASON:
        entity_kwargs = dict(
            parent_id=str(item.parentRatingKey) if getattr(item, "parentRatingKey", None) else None,
            parent_title=getattr(item, "parentTitle", None),
            season_number=getattr(item, "index", None),
        )

    return CatalogEntity(
        internal_id=str(item.ratingKey),
        title=item.title,
        kind=kind,
        year=getattr(item, "year", None),
        external_ids=external_ids_from_guids(_guid_values(item)),
        sort_title=getattr(item, "titleSort", None),
        thumb=getattr(item, "thumb", None),
        art=getattr(item, "art", None),
        **entity_kwargs,
    )


class PlexService:
    """Service pour interagir avec Plex.

    plexapi est bloquant: chaque appel est exécuté via ``asyncio.to_thread``.
    Les erreurs plexapi/requests sont converties en CatalogError.
    """

    def __init__(
        self,
        plex_config: Optional[PlexConfig] = None,
        server: Optional[PlexServer] = None,
        http_client: Optional[RobustHTTPClient] = None,
    ):
        plex_config = plex_config or get_config().plex
        if not plex_config.url or not plex_config.token:
            raise ConfigurationError("Plex url and token are required")
        self.base_url = plex_config.url.rstrip("/")
        self.token = plex_config.token
        self.timeout = plex_config.timeout
        self.http_client = http_client or get_http_client()
        self._server = server

    def _get_server(self) -> PlexServer:
        """Get or create Plex server connection."""
        if self._server is None:
            self._server = PlexServer(self.base_url, self.token, timeout=self.timeout)
        return self._server

    async def _call(self, description: str, fn: Callable[..., T], *args: Any) -> T:
        try:
            return await asyncio.to_thread(fn, *args)
        except (PlexApiException, requests.RequestException) as e:
            raise CatalogError(f"Error {description} from Plex: {e}", service="plex") from e

    # Libraries

    async def list_libraries(self) -> List[LibraryRef]:
        return await self._call("listing libraries", self._list_libraries)

    def _list_libraries(self) -> List[LibraryRef]:
        return [
            LibraryRef(id=str(section.key), title=section.title, kind=section.type)
            for section in self._get_server().library.sections()
            if section.type in SUPPORTED_SECTION_TYPES
        ]

    async def list_library_items(self, library_id: str) -> List[CatalogEntity]:
        return await self._call(f"fetching items of library {library_id}", self._list_library_items, library_id)

    def _list_library_items(self, library_id: str) -> List[CatalogEntity]:
        section = self._get_server().library.sectionByID(int(library_id))
        raw = list(section.all())
        if section.type == "show":
            raw.extend(section.search(libtype="episode"))
        items = [entity for entity in (to_entity(item) for item in raw) if entity]
        logger.info(f"Fetched {len(items)} items from Plex library '{section.title}'")
        return items

    # Collections

    async def list_collections(self, library_id: str) -> List[CollectionSpec]:
        return await self._call(f"fetching collections of library {library_id}", self._list_collections, library_id)

    def _list_collections(self, library_id: str) -> List[CollectionSpec]:
        section = self._get_server().library.sectionByID(int(library_id))
        collections = []
        for collection in section.collections():
            if not collection.title:
                continue
            collections.append(CollectionSpec(
                title=collection.title,
                sort_title=getattr(collection, "titleSort", None),
                summary=getattr(collection, "summary", None) or None,
                artwork=ArtworkRefs(
                    thumb=getattr(collection, "thumb", None),
                    art=getattr(collection, "art", None),
                ),
                collection_id=str(collection.ratingKey),
            ))
        return collections

    async def list_collection_members(self, collection_id: str) -> List[CatalogEntity]:
        return await self._call(
            f"fetching items of collection {collection_id}", self._list_collection_members, collection_id
        )

    def _list_collection_members(self, collection_id: str) -> List[CatalogEntity]:
        collection = self._get_server().fetchItem(int(collection_id))
        return [entity for entity in (to_entity(item) for item in collection.items()) if entity]

    # Search

    async def search_by_title(self, title: str) -> List[CatalogEntity]:
        if not title:
            return []
        return await self._call(f"searching '{title}'", self._search_by_title, title)

    def _search_by_title(self, title: str) -> List[CatalogEntity]:
        results = self._get_server().library.search(title=title)
        return [entity for entity in (to_entity(item) for item in results) if entity]

    # Watch state

    async def get_watch_state(self, item_id: str) -> Optional[WatchState]:
        return await self._call(f"reading watch state of {item_id}", self._get_watch_state, item_id)

    def _get_watch_state(self, item_id: str) -> Optional[WatchState]:
        try:
            item = self._get_server().fetchItem(int(item_id))
        except NotFound:
            return None
        return WatchState(
            watched=bool(item.isPlayed),
            position_seconds=(getattr(item, "viewOffset", 0) or 0) / 1000.0,
        )

    async def set_watch_state(self, item_id: str, state: WatchState) -> bool:
        return await self._call(f"updating watch state of {item_id}", self._set_watch_state, item_id, state)

    def _set_watch_state(self, item_id: str, state: WatchState) -> bool:
        try:
            item = self._get_server().fetchItem(int(item_id))
        except NotFound:
            logger.warning(f"Plex item {item_id} not found, watch state not updated")
            return False

        if state.watched:
            item.markPlayed()
        elif state.position_seconds > 0:
            if item.isPlayed:
                item.markUnplayed()
            item.updateProgress(int(state.position_seconds * 1000), state="stopped")
        else:
            item.markUnplayed()
        logger.debug(f"Updated Plex watch state of '{item.title}' ({item_id})")
        return True

    # Artwork

    async def fetch_image(self, locator: str) -> bytes:
        url = locator if locator.startswith("http") else f"{self.base_url}/{locator.lstrip('/')}"
        try:
            image = await self.http_client.get_bytes_async(
                url, "plex", params={"X-Plex-Token": self.token}, timeout=self.timeout
            )
        except httpx.HTTPError as e:
            raise CatalogError(f"Error downloading image {locator} from Plex: {e}", service="plex") from e
        if not image:
            raise CatalogError(f"Empty image {locator} from Plex", service="plex")
        return image

    async def test_connection(self) -> str:
        """Retourne le nom du serveur (diagnostic)."""
        server = await self._call("connecting", self._get_server)
        return server.friendlyName
