"""Matching cross-catalogues pour associer une entité source à une entité cible."""
from typing import Awaitable, Callable, List, Optional, Sequence
import logging

from mediabridge.core.index import EntityIndex, external_ids_equal
from mediabridge.core.models import CatalogEntity, EXTERNAL_ID_KINDS

logger = logging.getLogger(__name__)

SearchFn = Callable[[str], Awaitable[Sequence[CatalogEntity]]]


class EntityMatcher:
    """Matcher par stratégies ordonnées: tag, IDs externes, titre exact, titre approché.

    ``index`` est l'index pré-construit du catalogue visé (mode batch).
    ``search`` est la recherche live par titre du même catalogue, utilisée quand
    l'index manque ou ne trouve rien.
    """

    def __init__(
        self,
        index: Optional[EntityIndex] = None,
        search: Optional[SearchFn] = None,
        tag_keys: Sequence[str] = (),
    ):
        self.index = index
        self.search = search
        self.tag_keys = tuple(key.lower() for key in tag_keys)

    async def match(self, item: CatalogEntity) -> Optional[str]:
        """Retourne l'ID cible pour ``item``, ou None."""
        if item is None:
            raise ValueError("Cannot match a missing item")

        tagged = self.match_by_tag(item)
        if tagged:
            logger.debug(f"Tagged passthrough for '{item.title}': {tagged}")
            return tagged

        entity = await self.resolve(item)
        return entity.internal_id if entity else None

    async def resolve(self, item: CatalogEntity) -> Optional[CatalogEntity]:
        """Stratégies 2 et 3 (IDs externes puis titre)."""
        candidates: Optional[List[CatalogEntity]] = None

        if item.has_external_ids():
            if self.index is not None:
                match = self.index.find_by_external_ids(item.external_ids)
                if match:
                    logger.debug(f"Matched '{item.title}' by external ID to '{match.title}' ({match.internal_id})")
                    return match
            candidates = await self._search(item.title)
            match = self.match_by_id(item, candidates)
            if match:
                logger.debug(f"Matched '{item.title}' by external ID (live) to '{match.title}' ({match.internal_id})")
                return match

        if self.index is not None:
            match = self.index.find_by_title(item.title)
            if match:
                logger.debug(f"Matched '{item.title}' by exact title ({match.internal_id})")
                return match

        if candidates is None:
            candidates = await self._search(item.title)
        if not candidates and self.search is None and self.index is not None:
            candidates = self.index.entities()

        match = self.match_by_title(item, candidates)
        if match:
            return match

        logger.debug(f"No match found for '{item.title}' ({item.internal_id})")
        return None

    def match_by_tag(self, item: CatalogEntity) -> Optional[str]:
        """ID déjà porté par l'item dans le schéma du catalogue visé."""
        for key in self.tag_keys:
            value = item.external_ids.get(key)
            if value:
                return value
        return None

    @staticmethod
    def match_by_id(item: CatalogEntity, candidates: Sequence[CatalogEntity]) -> Optional[CatalogEntity]:
        """Match par ID (IMDb/TMDb/TVDb), dans cet ordre de priorité."""
        for kind in EXTERNAL_ID_KINDS:
            wanted = item.external_ids.get(kind)
            if not wanted:
                continue
            for candidate in candidates:
                if external_ids_equal(candidate.external_ids.get(kind), wanted):
                    return candidate
        return None

    @staticmethod
    def match_by_title(item: CatalogEntity, candidates: Sequence[CatalogEntity]) -> Optional[CatalogEntity]:
        """Titre exact (insensible à la casse), sinon premier titre qui contient l'autre."""
        title = (item.title or "").strip().lower()
        if not title:
            return None

        for candidate in candidates:
            if (candidate.title or "").strip().lower() == title:
                logger.debug(f"Matched '{item.title}' by exact title ({candidate.internal_id})")
                return candidate

        for candidate in candidates:
            candidate_title = (candidate.title or "").strip().lower()
            if not candidate_title:
                continue
            if title in candidate_title or candidate_title in title:
                logger.debug(f"Approximate title match '{item.title}' -> '{candidate.title}' ({candidate.internal_id})")
                return candidate

        return None

    async def _search(self, title: str) -> List[CatalogEntity]:
        if self.search is None or not title:
            return []
        try:
            return list(await self.search(title))
        except Exception as e:
            logger.warning(f"Live search failed for '{title}': {e}")
            return []
