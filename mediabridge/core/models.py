"""Core business models."""
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional, List, Dict, Any, Tuple
from datetime import datetime
import uuid


EXTERNAL_ID_KINDS: Tuple[str, ...] = ("imdb", "tmdb", "tvdb")


class MediaKind(str, Enum):
    """Type d'entité dans un catalogue."""
    MOVIE = "movie"
    SERIES = "series"
    SEASON = "season"
    EPISODE = "episode"


class SyncDirection(str, Enum):
    SOURCE_TO_TARGET = "SourceToTarget"
    TARGET_TO_SOURCE = "TargetToSource"
    BIDIRECTIONAL = "Bidirectional"


class SyncPhase(str, Enum):
    INITIALIZING = "initializing"
    INDEX_BUILDING = "index_building"
    ARTWORK = "artwork"
    COLLECTIONS = "collections"
    WATCH_STATE = "watch_state"
    FINALIZING = "finalizing"
    COMPLETE = "complete"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass(frozen=True)
class CatalogEntity:
    """Entité média d'un catalogue (film/série/saison/épisode).

    Snapshot immuable pour la durée d'un run. ``parent_id`` est une simple
    référence de lookup vers la série/saison parente.
    """
    internal_id: str
    title: str
    kind: MediaKind
    year: Optional[int] = None
    external_ids: Dict[str, str] = field(default_factory=dict)
    parent_id: Optional[str] = None
    parent_title: Optional[str] = None
    sort_title: Optional[str] = None
    thumb: Optional[str] = None
    art: Optional[str] = None
    season_number: Optional[int] = None
    episode_number: Optional[int] = None

    def __post_init__(self):
        if self.internal_id is None:
            raise ValueError("CatalogEntity requires an internal_id")
        # Drop absent/empty IDs so lookups never see blanks
        cleaned = {
            str(key).lower(): str(value).strip()
            for key, value in (self.external_ids or {}).items()
            if value is not None and str(value).strip()
        }
        object.__setattr__(self, "external_ids", cleaned)

    def get_external_id(self, kind: str) -> Optional[str]:
        return self.external_ids.get(kind.lower())

    def has_external_ids(self) -> bool:
        return any(self.external_ids.get(kind) for kind in EXTERNAL_ID_KINDS)

    @property
    def display_title(self) -> str:
        """Titre lisible, avec la série pour les épisodes."""
        if self.kind == MediaKind.EPISODE and self.parent_title:
            if self.season_number is not None and self.episode_number is not None:
                return f"{self.parent_title} - S{self.season_number:02d}E{self.episode_number:02d} - {self.title}"
            return f"{self.parent_title} - {self.title}"
        return self.title


@dataclass(frozen=True)
class WatchState:
    """(watched, position) pour un couple utilisateur/entité."""
    watched: bool = False
    position_seconds: float = 0.0

    def __post_init__(self):
        if self.position_seconds is None or self.position_seconds < 0:
            object.__setattr__(self, "position_seconds", 0.0)


@dataclass(frozen=True)
class ArtworkRefs:
    thumb: Optional[str] = None
    art: Optional[str] = None

    def is_empty(self) -> bool:
        return not self.thumb and not self.art


@dataclass(frozen=True)
class LibraryRef:
    id: str
    title: str
    kind: str = "movie"  # movie, show, artist, photo


@dataclass(frozen=True)
class TargetCollection:
    """Collection existante côté cible."""
    id: str
    title: str


@dataclass
class CollectionSpec:
    """Collection désirée, produite à chaque run depuis le catalogue source."""
    title: str
    sort_title: Optional[str] = None
    summary: Optional[str] = None
    member_items: List[CatalogEntity] = field(default_factory=list)
    artwork: ArtworkRefs = field(default_factory=ArtworkRefs)
    collection_id: Optional[str] = None

    def __post_init__(self):
        if not self.title:
            raise ValueError("CollectionSpec requires a title")
        # Collapse duplicates by internal ID, keeping first occurrence
        seen = set()
        unique = []
        for item in self.member_items:
            if item.internal_id in seen:
                continue
            seen.add(item.internal_id)
            unique.append(item)
        self.member_items = unique

    def with_members(self, members: List[CatalogEntity]) -> "CollectionSpec":
        return replace(self, member_items=list(members))


@dataclass
class CollectionChange:
    title: str
    sort_title: Optional[str] = None
    summary: Optional[str] = None
    items: List[str] = field(default_factory=list)


@dataclass
class ArtworkChange:
    title: str
    slots: List[str] = field(default_factory=list)  # primary, backdrop


@dataclass
class WatchStateChange:
    title: str
    current_state: str
    new_state: str


@dataclass
class DryRunDetails:
    """Ce qui changerait (dry run uniquement)."""
    collections_to_add: List[CollectionChange] = field(default_factory=list)
    collections_to_update: List[CollectionChange] = field(default_factory=list)
    items_artwork_to_update: List[ArtworkChange] = field(default_factory=list)
    watch_states_changed: List[WatchStateChange] = field(default_factory=list)

    @property
    def total_changes(self) -> int:
        return (
            len(self.collections_to_add)
            + len(self.collections_to_update)
            + len(self.items_artwork_to_update)
            + len(self.watch_states_changed)
        )


@dataclass
class SyncResult:
    collections_added: int = 0
    collections_updated: int = 0
    items_artwork_updated: int = 0
    watch_states_updated: int = 0
    items_unmatched: int = 0
    errors: List[str] = field(default_factory=list)
    details: Optional[DryRunDetails] = None

    def summary(self) -> Dict[str, Any]:
        return {
            "collections_added": self.collections_added,
            "collections_updated": self.collections_updated,
            "items_artwork_updated": self.items_artwork_updated,
            "watch_states_updated": self.watch_states_updated,
            "items_unmatched": self.items_unmatched,
            "errors_count": len(self.errors),
        }


@dataclass
class SyncStatus:
    """Progression d'un run, partagée entre le thread du run et les lecteurs."""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    progress: int = 0
    message: str = "Initializing..."
    phase: SyncPhase = SyncPhase.INITIALIZING
    is_complete: bool = False
    is_dry_run: bool = False
    start_time: datetime = field(default_factory=datetime.utcnow)
    end_time: Optional[datetime] = None
    total_items: int = 0
    processed_items: int = 0
    remaining_items: int = 0
    error: Optional[str] = None
    result: Optional[SyncResult] = None

    @property
    def elapsed_seconds(self) -> float:
        return ((self.end_time or datetime.utcnow()) - self.start_time).total_seconds()
