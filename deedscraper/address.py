"""Street address helpers shared by the county adapters and the registry."""

from __future__ import annotations

import re
from dataclasses import dataclass

from deedscraper.models import Jurisdiction

STREET_SUFFIXES = {
    "st": "Street",
    "street": "Street",
    "ave": "Avenue",
    "avenue": "Avenue",
    "dr": "Drive",
    "drive": "Drive",
    "rd": "Road",
    "road": "Road",
    "blvd": "Boulevard",
    "boulevard": "Boulevard",
    "ln": "Lane",
    "lane": "Lane",
    "ct": "Court",
    "court": "Court",
    "pl": "Place",
    "place": "Place",
    "cir": "Circle",
    "circle": "Circle",
    "way": "Way",
    "wy": "Way",
    "pkwy": "Parkway",
    "parkway": "Parkway",
    "ter": "Terrace",
    "terrace": "Terrace",
    "trl": "Trail",
    "trail": "Trail",
}

# Address city -> county seat jurisdiction, for requests that don't name one.
CITY_TO_JURISDICTION = {
    "windermere": ("Orange", "FL"),
    "orlando": ("Orange", "FL"),
    "winter park": ("Orange", "FL"),
    "apopka": ("Orange", "FL"),
    "ocoee": ("Orange", "FL"),
    "jacksonville": ("Duval", "FL"),
    "jacksonville beach": ("Duval", "FL"),
    "seattle": ("King", "WA"),
    "bellevue": ("King", "WA"),
    "redmond": ("King", "WA"),
    "kent": ("King", "WA"),
    "tacoma": ("Pierce", "WA"),
    "puyallup": ("Pierce", "WA"),
    "lakewood": ("Pierce", "WA"),
    "gig harbor": ("Pierce", "WA"),
}

STATE_NAMES = {
    "florida": "FL",
    "washington": "WA",
}

_SUFFIX_RE = re.compile(
    r"\b(" + "|".join(sorted(STREET_SUFFIXES, key=len, reverse=True)) + r")\.?(?=\s|$)",
    re.IGNORECASE,
)
_ZIP_RE = re.compile(r"\b\d{5}(?:-\d{4})?\b")
_STATE_ZIP_RE = re.compile(r"^\s*([A-Za-z]{2}|[A-Za-z ]+?)\s*(\d{5}(?:-\d{4})?)?\s*$")


@dataclass(frozen=True, slots=True)
class StreetParts:
    number: str
    name: str
    street_type: str


def street_line(address: str) -> str:
    """Part of the address before the first comma."""
    return address.split(",")[0].strip()


def normalize_street_suffix(street: str) -> str:
    """``"123 Main St"`` -> ``"123 Main Street"``.

    Only abbreviations that stand alone as a word are expanded.
    """

    def _expand(match: re.Match[str]) -> str:
        return STREET_SUFFIXES[match.group(1).lower()]

    return _SUFFIX_RE.sub(_expand, street)


def split_street(address: str) -> StreetParts:
    """Split a street line into number, name and normalized street type."""
    street = street_line(address)
    tokens = street.split()
    if not tokens:
        return StreetParts("", "", "")
    number = tokens[0] if tokens[0].isdigit() else ""
    rest = tokens[1:] if number else tokens
    street_type = ""
    if len(rest) > 1 and rest[-1].rstrip(".").lower() in STREET_SUFFIXES:
        street_type = STREET_SUFFIXES[rest[-1].rstrip(".").lower()]
        rest = rest[:-1]
    return StreetParts(number=number, name=" ".join(rest), street_type=street_type)


def strip_locality(address: str, *tokens: str) -> str:
    """Drop city/state/zip noise so only the street line remains."""
    cleaned = street_line(address)
    for token in tokens:
        cleaned = re.sub(rf"\b{re.escape(token)}\b", "", cleaned, flags=re.IGNORECASE)
    cleaned = _ZIP_RE.sub("", cleaned)
    return re.sub(r"\s+", " ", cleaned).strip()


def infer_jurisdiction(address: str) -> Jurisdiction | None:
    """Guess the county from the city (and state) in ``"street, city, ST zip"``."""
    parts = [p.strip() for p in address.split(",") if p.strip()]
    if len(parts) < 2:
        return None
    city = parts[1].lower()
    state = None
    if len(parts) > 2:
        match = _STATE_ZIP_RE.match(parts[2])
        if match:
            raw = match.group(1).strip()
            state = STATE_NAMES.get(raw.lower(), raw.upper())
    mapped = CITY_TO_JURISDICTION.get(city)
    if mapped is None:
        return None
    county, mapped_state = mapped
    if state and state != mapped_state:
        return None
    return Jurisdiction(county=county, state=mapped_state)
