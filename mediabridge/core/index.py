"""Cross-reference index over a catalog snapshot."""
from typing import Dict, Iterable, List, Mapping, Optional, Tuple
import logging

from mediabridge.core.models import CatalogEntity, EXTERNAL_ID_KINDS

logger = logging.getLogger(__name__)

# Agent names seen in legacy guids (com.plexapp.agents.themoviedb://...)
_SCHEME_ALIASES = {
    "imdb": "imdb",
    "tmdb": "tmdb",
    "themoviedb": "tmdb",
    "tvdb": "tvdb",
    "thetvdb": "tvdb",
}

_PATH_PREFIXES = ("title/", "movie/", "movies/", "series/", "show/", "tv/", "episode/")


def normalize_external_id(value: Optional[str]) -> str:
    """Normalise un ID externe: 'imdb://tt123', 'TT123' et '...imdb://tt123?lang=en' -> 'tt123'."""
    if value is None:
        return ""
    normalized = str(value).strip().lower()
    if "://" in normalized:
        normalized = normalized.split("://", 1)[1]
    normalized = normalized.split("?", 1)[0]
    for prefix in _PATH_PREFIXES:
        if normalized.startswith(prefix):
            normalized = normalized[len(prefix):]
            break
    return normalized.strip("/")


def external_ids_equal(left: Optional[str], right: Optional[str]) -> bool:
    """Compare deux IDs externes encodés différemment (préfixe, schéma, casse)."""
    a = normalize_external_id(left)
    b = normalize_external_id(right)
    if not a or not b:
        return False
    if a == b:
        return True
    return a.endswith("/" + b) or b.endswith("/" + a)


def parse_guid(guid: Optional[str]) -> Optional[Tuple[str, str]]:
    """Extrait (kind, value) d'un guid de catalogue, None pour les schémas inconnus."""
    if not guid or "://" not in guid:
        return None
    scheme = guid.split("://", 1)[0].strip().lower()
    kind = _SCHEME_ALIASES.get(scheme.rsplit(".", 1)[-1])
    if not kind:
        return None
    value = normalize_external_id(guid)
    if not value:
        return None
    return kind, value


def external_ids_from_guids(guids: Iterable[str]) -> Dict[str, str]:
    """Construit le mapping {imdb|tmdb|tvdb: id} depuis une liste de guids (premier gagnant)."""
    ids: Dict[str, str] = {}
    for guid in guids:
        parsed = parse_guid(guid)
        if parsed and parsed[0] not in ids:
            ids[parsed[0]] = parsed[1]
    return ids


def _title_key(title: Optional[str]) -> str:
    return (title or "").strip().lower()


class EntityIndex:
    """Multi-key lookup table built once per run from a catalog snapshot.

    Four case-insensitive maps: by IMDb, TMDb, TVDb and title. Title collisions
    are last-write-wins; this loses entities that share a title, which is why
    the external-ID maps always take precedence in ``find_match``.
    """

    def __init__(self):
        self._by_external_id: Dict[str, Dict[str, CatalogEntity]] = {
            kind: {} for kind in EXTERNAL_ID_KINDS
        }
        self._by_title: Dict[str, CatalogEntity] = {}
        self._count = 0

    @classmethod
    def build(cls, items: Iterable[CatalogEntity]) -> "EntityIndex":
        index = cls()
        for item in items:
            index.add(item)
        logger.info(
            f"Entity index built: {index._count} entities, "
            f"{len(index._by_external_id['imdb'])} imdb, "
            f"{len(index._by_external_id['tmdb'])} tmdb, "
            f"{len(index._by_external_id['tvdb'])} tvdb, "
            f"{len(index._by_title)} titles"
        )
        return index

    def add(self, entity: CatalogEntity) -> None:
        self._count += 1
        title_key = _title_key(entity.title)
        if title_key:
            self._by_title[title_key] = entity
        for kind in EXTERNAL_ID_KINDS:
            key = normalize_external_id(entity.external_ids.get(kind))
            if key:
                self._by_external_id[kind][key] = entity

    def find_by_external_ids(self, external_ids: Mapping[str, str]) -> Optional[CatalogEntity]:
        """IMDb, puis TMDb, puis TVDb."""
        lowered = {str(k).lower(): v for k, v in (external_ids or {}).items()}
        for kind in EXTERNAL_ID_KINDS:
            key = normalize_external_id(lowered.get(kind))
            if not key:
                continue
            match = self._by_external_id[kind].get(key)
            if match is not None:
                return match
        return None

    def find_by_title(self, title: Optional[str]) -> Optional[CatalogEntity]:
        key = _title_key(title)
        if not key:
            return None
        return self._by_title.get(key)

    def find_match(self, candidate: CatalogEntity) -> Optional[CatalogEntity]:
        """IMDb -> TMDb -> TVDb -> title, first hit wins."""
        return (
            self.find_by_external_ids(candidate.external_ids)
            or self.find_by_title(candidate.title)
        )

    def entities(self) -> List[CatalogEntity]:
        """Entités indexées par titre (une par titre)."""
        return list(self._by_title.values())

    def __len__(self) -> int:
        return self._count
