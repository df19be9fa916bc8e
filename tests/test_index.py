from __future__ import annotations

from mediabridge.core.index import (
    EntityIndex,
    external_ids_equal,
    external_ids_from_guids,
    normalize_external_id,
    parse_guid,
)
from mediabridge.core.models import CatalogEntity, MediaKind

from fakes import movie


def test_normalize_external_id_strips_scheme_query_and_case() -> None:
    assert normalize_external_id("imdb://TT0133093") == "tt0133093"
    assert normalize_external_id("com.plexapp.agents.imdb://tt0133093?lang=en") == "tt0133093"
    assert normalize_external_id("  tt0133093 ") == "tt0133093"
    assert normalize_external_id("tmdb://movie/603") == "603"
    assert normalize_external_id(None) == ""


def test_external_ids_equal_tolerates_encodings() -> None:
    assert external_ids_equal("imdb://tt0133093", "TT0133093")
    assert external_ids_equal("603", "tmdb://603")
    assert not external_ids_equal("603", "604")
    assert not external_ids_equal("", "")
    assert not external_ids_equal(None, "603")


def test_parse_guid_known_and_legacy_schemes() -> None:
    assert parse_guid("imdb://tt0133093") == ("imdb", "tt0133093")
    assert parse_guid("com.plexapp.agents.themoviedb://603?lang=en") == ("tmdb", "603")
    assert parse_guid("com.plexapp.agents.thetvdb://81189") == ("tvdb", "81189")
    assert parse_guid("plex://movie/5d776825880197001ec967c4") is None
    assert parse_guid("not a guid") is None


def test_external_ids_from_guids_first_wins() -> None:
    ids = external_ids_from_guids(["imdb://tt1", "tmdb://2", "imdb://tt9", "plex://movie/x"])
    assert ids == {"imdb": "tt1", "tmdb": "2"}


def test_catalog_entity_drops_empty_ids_and_lowercases_keys() -> None:
    entity = CatalogEntity(
        internal_id="1",
        title="Alien",
        kind=MediaKind.MOVIE,
        external_ids={"Imdb": "tt0078748", "Tmdb": "", "Tvdb": None},
    )
    assert entity.external_ids == {"imdb": "tt0078748"}
    assert entity.has_external_ids()


def test_index_prefers_imdb_over_tmdb() -> None:
    by_imdb = movie("a", "Alpha", imdb="tt1")
    by_tmdb = movie("b", "Beta", tmdb="42")
    index = EntityIndex.build([by_imdb, by_tmdb])

    assert index.find_by_external_ids({"imdb": "tt1", "tmdb": "42"}) is by_imdb
    assert index.find_by_external_ids({"Tmdb": "tmdb://42"}) is by_tmdb
    assert index.find_by_external_ids({"tvdb": "7"}) is None


def test_index_title_lookup_is_case_insensitive_last_write_wins() -> None:
    first = movie("1", "Dune")
    second = movie("2", "DUNE")
    index = EntityIndex.build([first, second])

    assert index.find_by_title(" dune ") is second
    assert index.find_by_title("") is None
    assert len(index) == 2


def test_find_match_falls_back_to_title() -> None:
    target = movie("t1", "Heat", imdb="tt0113277")
    index = EntityIndex.build([target])

    assert index.find_match(movie("s1", "Something else", imdb="tt0113277")) is target
    assert index.find_match(movie("s2", "heat")) is target
    assert index.find_match(movie("s3", "Ronin")) is None
