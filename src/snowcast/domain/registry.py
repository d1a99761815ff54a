from __future__ import annotations

from typing import Iterable, Iterator

from .models import Location

DEFAULT_LOCATIONS: tuple[Location, ...] = (
    Location(id="chamonix", name="Chamonix", lat=45.9237, lon=6.8694, elevation_m=2400),
    Location(id="vallorcine", name="Vallorcine", lat=45.9833, lon=6.8500, elevation_m=1800),
    Location(id="saint-gervais", name="Saint-Gervais", lat=45.8917, lon=6.7125, elevation_m=1600),
    Location(id="les-contamines", name="Les Contamines", lat=45.8167, lon=6.7278, elevation_m=1850),
    Location(id="combloux", name="Combloux", lat=45.8944, lon=6.6389, elevation_m=1500),
)


class LocationRegistry:
    """Read-only, ordered set of forecast locations keyed by id."""

    __slots__ = ("_locations", "_by_id")

    def __init__(self, locations: Iterable[Location] = DEFAULT_LOCATIONS) -> None:
        ordered = tuple(locations)
        by_id: dict[str, Location] = {}
        for location in ordered:
            if location.id in by_id:
                raise ValueError(f"Duplicate location id: {location.id}")
            by_id[location.id] = location
        self._locations = ordered
        self._by_id = by_id

    def __iter__(self) -> Iterator[Location]:
        return iter(self._locations)

    def __len__(self) -> int:
        return len(self._locations)

    def __contains__(self, location_id: object) -> bool:
        return location_id in self._by_id

    def __repr__(self) -> str:
        return f"LocationRegistry({list(self.ids())!r})"

    def get(self, location_id: str) -> Location | None:
        return self._by_id.get(location_id)

    def ids(self) -> tuple[str, ...]:
        return tuple(location.id for location in self._locations)
