from __future__ import annotations

from typing import Iterable

from loguru import logger

from deedscraper.adapters.base import JurisdictionAdapter
from deedscraper.adapters.duval_fl import DuvalCountyFLAdapter
from deedscraper.adapters.king_wa import KingCountyWAAdapter
from deedscraper.adapters.orange_fl import OrangeCountyFLAdapter
from deedscraper.adapters.pierce_wa import PierceCountyWAAdapter
from deedscraper.address import infer_jurisdiction
from deedscraper.exceptions import UnsupportedJurisdiction
from deedscraper.models import Jurisdiction, SearchRequest

COUNTY_ALIASES = {
    "miami dade": "miami-dade",
    "miamidade": "miami-dade",
    "dade": "miami-dade",
    "st johns": "st. johns",
    "saint johns": "st. johns",
    "st lucie": "st. lucie",
    "saint lucie": "st. lucie",
}


def normalize_county(name: str | None) -> str:
    """``"Orange County"`` -> ``"orange"``; aliases collapse to one spelling."""
    cleaned = " ".join((name or "").strip().lower().replace("_", " ").split())
    if cleaned.endswith(" county"):
        cleaned = cleaned[: -len(" county")].strip()
    return COUNTY_ALIASES.get(cleaned, cleaned)


def normalize_state(state: str | None) -> str:
    return (state or "").strip().upper()


class AdapterRegistry:
    """Maps a jurisdiction to the adapter that knows its sites."""

    def __init__(
        self,
        adapters: Iterable[JurisdictionAdapter] = (),
        default: Jurisdiction | None = None,
    ) -> None:
        self._adapters: dict[tuple[str, str], JurisdictionAdapter] = {}
        self.default = default
        for adapter in adapters:
            self.register(adapter)

    def register(self, adapter: JurisdictionAdapter) -> None:
        key = (normalize_county(adapter.config.county), normalize_state(adapter.config.state))
        if key in self._adapters:
            raise ValueError(f"Adapter already registered for {adapter.config.jurisdiction}")
        self._adapters[key] = adapter

    def get(self, county: str | None, state: str | None = None) -> JurisdictionAdapter | None:
        county_key = normalize_county(county)
        state_key = normalize_state(state)
        if state_key:
            return self._adapters.get((county_key, state_key))
        # County name alone is fine as long as it is unambiguous
        matches = [a for (c, _), a in self._adapters.items() if c == county_key]
        return matches[0] if len(matches) == 1 else None

    def resolve(self, request: SearchRequest) -> JurisdictionAdapter:
        """Pick the adapter for ``request``.

        Explicit jurisdiction wins; otherwise the city in the address is used;
        otherwise the configured default.
        """
        if request.jurisdiction is not None:
            adapter = self.get(request.jurisdiction.county, request.jurisdiction.state)
            if adapter is None:
                raise UnsupportedJurisdiction(f"No adapter for {request.jurisdiction}")
            return adapter

        inferred = infer_jurisdiction(request.address)
        if inferred is not None:
            adapter = self.get(inferred.county, inferred.state)
            if adapter is not None:
                return adapter

        if self.default is not None:
            adapter = self.get(self.default.county, self.default.state)
            if adapter is not None:
                logger.debug("No jurisdiction for {!r}, using default {}", request.address, self.default)
                return adapter

        raise UnsupportedJurisdiction(f"Could not determine a supported county for {request.address!r}")

    def requires_captcha(self, county: str | None, state: str | None = None) -> bool:
        adapter = self.get(county, state)
        return bool(adapter and adapter.config.requires_captcha)

    def supported(self) -> list[dict]:
        return [a.config.describe() for a in sorted(self._adapters.values(), key=lambda a: a.key)]

    def __len__(self) -> int:
        return len(self._adapters)


def default_registry(default: Jurisdiction | None = None) -> AdapterRegistry:
    return AdapterRegistry(
        [
            OrangeCountyFLAdapter(),
            DuvalCountyFLAdapter(),
            KingCountyWAAdapter(),
            PierceCountyWAAdapter(),
        ],
        default=default,
    )
