from __future__ import annotations

from deedscraper.address import (
    StreetParts,
    infer_jurisdiction,
    normalize_street_suffix,
    split_street,
    street_line,
    strip_locality,
)
from deedscraper.models import Jurisdiction


def test_street_line_drops_city_and_zip() -> None:
    assert street_line("12729 Hawkstone Drive, Windermere, FL 34786") == "12729 Hawkstone Drive"


def test_suffix_abbreviations_expand() -> None:
    assert normalize_street_suffix("12729 Hawkstone Dr") == "12729 Hawkstone Drive"
    assert normalize_street_suffix("500 Main St.") == "500 Main Street"
    assert normalize_street_suffix("9 Lake Blvd") == "9 Lake Boulevard"


def test_suffix_inside_a_word_is_left_alone() -> None:
    assert normalize_street_suffix("12729 Hawkstone Drive") == "12729 Hawkstone Drive"


def test_split_street_separates_number_name_and_type() -> None:
    assert split_street("4511 Ortega Blvd, Jacksonville, FL") == StreetParts("4511", "Ortega", "Boulevard")
    assert split_street("100 San Jose Pkwy") == StreetParts("100", "San Jose", "Parkway")


def test_split_street_without_type_or_number() -> None:
    assert split_street("Broadway") == StreetParts("", "Broadway", "")
    assert split_street("") == StreetParts("", "", "")


def test_strip_locality_removes_state_tokens() -> None:
    assert strip_locality("7550 41st Ave NE, Seattle, WA 98115", "WA") == "7550 41st Ave NE"
    assert strip_locality("1200 Pine St 98101", "WA") == "1200 Pine St"


def test_infer_jurisdiction_from_city() -> None:
    assert infer_jurisdiction("12729 Hawkstone Drive, Windermere, FL 34786") == Jurisdiction(
        county="Orange", state="FL"
    )
    assert infer_jurisdiction("7550 41st Ave NE, Seattle, WA 98115") == Jurisdiction(county="King", state="WA")
    assert infer_jurisdiction("3500 Bridgeport Way W, Lakewood, Washington") == Jurisdiction(
        county="Pierce", state="WA"
    )


def test_infer_jurisdiction_rejects_state_mismatch() -> None:
    assert infer_jurisdiction("1 Main St, Orlando, WA 98000") is None


def test_infer_jurisdiction_unknown_or_missing_city() -> None:
    assert infer_jurisdiction("1 Main St") is None
    assert infer_jurisdiction("1 Main St, Springfield, IL") is None
