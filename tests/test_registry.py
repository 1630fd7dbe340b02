from __future__ import annotations

import pytest

from deedscraper.adapters.orange_fl import OrangeCountyFLAdapter
from deedscraper.exceptions import UnsupportedJurisdiction
from deedscraper.models import Jurisdiction, SearchRequest
from deedscraper.registry import AdapterRegistry, default_registry, normalize_county

ORANGE = Jurisdiction(county="Orange", state="FL")


def test_normalize_county_strips_suffix_and_aliases() -> None:
    assert normalize_county("Orange County") == "orange"
    assert normalize_county("  ORANGE  ") == "orange"
    assert normalize_county("Miami Dade County") == "miami-dade"
    assert normalize_county("miamidade") == "miami-dade"
    assert normalize_county(None) == ""


def test_get_by_county_and_state() -> None:
    registry = default_registry()

    assert registry.get("orange county", "fl").key == "orange-fl"
    assert registry.get("King", "WA").key == "king-wa"
    assert registry.get("Orange", "WA") is None


def test_get_by_county_alone_when_unambiguous() -> None:
    assert default_registry().get("Duval").key == "duval-fl"


def test_resolve_prefers_explicit_jurisdiction() -> None:
    request = SearchRequest(
        address="7550 41st Ave NE, Seattle, WA",
        jurisdiction=Jurisdiction(county="Pierce", state="WA"),
    )

    assert default_registry(ORANGE).resolve(request).key == "pierce-wa"


def test_resolve_infers_from_city() -> None:
    request = SearchRequest(address="4511 Ortega Blvd, Jacksonville, FL 32210")

    assert default_registry(ORANGE).resolve(request).key == "duval-fl"


def test_resolve_falls_back_to_default() -> None:
    assert default_registry(ORANGE).resolve(SearchRequest(address="12729 Hawkstone Drive")).key == "orange-fl"


def test_resolve_without_default_is_unsupported() -> None:
    with pytest.raises(UnsupportedJurisdiction, match="Could not determine"):
        default_registry().resolve(SearchRequest(address="1 Main St, Springfield, IL"))


def test_resolve_unknown_explicit_county_is_unsupported() -> None:
    request = SearchRequest(address="1 Main St", jurisdiction=Jurisdiction(county="Cook", state="IL"))

    with pytest.raises(UnsupportedJurisdiction, match="No adapter for Cook County, IL"):
        default_registry(ORANGE).resolve(request)


def test_duplicate_registration_is_rejected() -> None:
    registry = AdapterRegistry([OrangeCountyFLAdapter()])

    with pytest.raises(ValueError, match="already registered"):
        registry.register(OrangeCountyFLAdapter())


def test_supported_lists_every_adapter() -> None:
    registry = default_registry()
    supported = registry.supported()

    assert len(registry) == 4
    assert [entry["key"] for entry in supported] == ["duval-fl", "king-wa", "orange-fl", "pierce-wa"]
    assert registry.requires_captcha("Orange", "FL") is True
    assert registry.requires_captcha("King", "WA") is False
    assert registry.requires_captcha("Cook", "IL") is False
