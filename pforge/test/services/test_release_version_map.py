from __future__ import annotations

from pforge.core.result import Err, Ok
from pforge.services.release.version_map import (
    MISSING_ENTRY_MESSAGE,
    ProjectVersionMap,
    matches_pattern,
    parse_version_map,
)


def _map(pairs: list[tuple[str, str]], **kwargs: bool) -> ProjectVersionMap:
    parsed = parse_version_map(pairs, **kwargs)
    assert isinstance(parsed, Ok)
    return parsed.value


def test_empty_name_is_rejected_with_fixed_message() -> None:
    result = parse_version_map([("", "1.0.X")])

    assert isinstance(result, Err)
    assert result.error.kind == "invalid_version_map_entry"
    assert result.error.message == MISSING_ENTRY_MESSAGE


def test_empty_version_is_rejected_with_fixed_message() -> None:
    result = parse_version_map([("Core", "  ")])

    assert isinstance(result, Err)
    assert result.error.message == MISSING_ENTRY_MESSAGE


def test_bad_version_names_the_project() -> None:
    result = parse_version_map([("Core", "1.X.2")])

    assert isinstance(result, Err)
    assert result.error.kind == "invalid_version_map_entry"
    assert result.error.message.startswith("Core:")


def test_duplicate_names_are_rejected_case_insensitively() -> None:
    result = parse_version_map([("Core", "1.0.0"), ("core", "2.0.0")])

    assert isinstance(result, Err)
    assert "duplicate" in result.error.message


def test_include_mode_needs_entries() -> None:
    result = parse_version_map([], as_include=True)

    assert isinstance(result, Err)
    assert result.error.kind == "invalid_input"


def test_lookup_is_case_insensitive() -> None:
    vmap = _map([("Contoso.Core", "1.2.X")])

    assert vmap.lookup("contoso.core") == "1.2.X"
    assert vmap.lookup("Contoso.Core.Tests") is None


def test_wildcards_only_when_enabled() -> None:
    plain = _map([("Contoso.*", "1.0.0")])
    wild = _map([("Contoso.*", "1.0.0")], use_wildcards=True)

    assert plain.lookup("Contoso.Core") is None
    assert plain.lookup("Contoso.*") == "1.0.0"
    assert wild.lookup("contoso.core") == "1.0.0"


def test_first_matching_entry_wins() -> None:
    vmap = _map([("Contoso.Core", "3.0.0"), ("Contoso.*", "1.0.X")], use_wildcards=True)

    assert vmap.lookup("Contoso.Core") == "3.0.0"
    assert vmap.lookup("Contoso.Web") == "1.0.X"


def test_question_mark_matches_one_character() -> None:
    assert matches_pattern("Lib1", "Lib?", use_wildcards=True)
    assert not matches_pattern("Lib12", "Lib?", use_wildcards=True)
    assert not matches_pattern("Lib.1", "Lib[.]1", use_wildcards=True)


def test_unmatched_patterns_in_declaration_order() -> None:
    vmap = _map([("Zeta", "1.0.0"), ("Alpha", "1.0.0"), ("Core", "1.0.0")])

    assert vmap.unmatched_patterns(["core"]) == ["Zeta", "Alpha"]
