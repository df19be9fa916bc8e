"""Contracts the sync core expects from the two catalogs."""
from typing import List, Optional, Protocol, Sequence, runtime_checkable

from mediabridge.core.models import (
    CatalogEntity,
    CollectionSpec,
    LibraryRef,
    MediaKind,
    TargetCollection,
    WatchState,
)

# Artwork slots understood by attach_artwork
SLOT_PRIMARY = "Primary"
SLOT_BACKDROP = "Backdrop"


@runtime_checkable
class SourceCatalogClient(Protocol):
    """Catalogue source (Plex). Toutes les méthodes lèvent CatalogError en cas d'échec réseau."""

    async def list_libraries(self) -> List[LibraryRef]: ...

    async def list_collections(self, library_id: str) -> List[CollectionSpec]:
        """Collections sans membres; ``collection_id`` sert à list_collection_members."""
        ...

    async def list_collection_members(self, collection_id: str) -> List[CatalogEntity]: ...

    async def list_library_items(self, library_id: str) -> List[CatalogEntity]:
        """Films, séries et épisodes de la bibliothèque."""
        ...

    async def search_by_title(self, title: str) -> List[CatalogEntity]: ...

    async def get_watch_state(self, item_id: str) -> Optional[WatchState]:
        """None si l'item n'existe pas côté source."""
        ...

    async def set_watch_state(self, item_id: str, state: WatchState) -> bool: ...

    async def fetch_image(self, locator: str) -> bytes: ...

    async def test_connection(self) -> str:
        """Nom du serveur; lève CatalogError si injoignable."""
        ...


@runtime_checkable
class TargetCatalogClient(Protocol):
    """Catalogue cible (Jellyfin)."""

    async def list_catalog(self, kinds: Sequence[MediaKind]) -> List[CatalogEntity]: ...

    async def find_by_title(self, title: str) -> List[CatalogEntity]: ...

    async def find_collections(self, title: str) -> List[TargetCollection]:
        """Collections dont le titre est exactement ``title`` (insensible à la casse)."""
        ...

    async def create_collection(self, spec: CollectionSpec, item_ids: List[str]) -> str: ...

    async def delete_collection(self, collection_id: str) -> None: ...

    async def rename_collection(self, collection_id: str, title: str) -> None: ...

    async def update_collection_metadata(
        self, collection_id: str, summary: Optional[str], sort_title: Optional[str]
    ) -> None: ...

    async def attach_artwork(self, item_id: str, image_bytes: bytes, slot: str) -> None: ...

    async def default_user_id(self) -> Optional[str]: ...

    async def get_user_watch_state(self, user_id: str, item_id: str) -> Optional[WatchState]: ...

    async def set_user_watch_state(self, user_id: str, item_id: str, state: WatchState) -> None: ...

    async def test_connection(self) -> str: ...
