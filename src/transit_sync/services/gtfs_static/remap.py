"""Natural id to surrogate key maps, scoped to one import run."""

from __future__ import annotations

from typing import TYPE_CHECKING

from transit_sync.services.gtfs_static.tables import AGENCY, ROUTES, STOPS, TRIPS

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping

    from transit_sync.services.gtfs_static.tables import Reference


class IdMap:
    """Natural id -> surrogate key for one table of one feed version."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._keys: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._keys)

    def __contains__(self, natural_id: object) -> bool:
        return natural_id in self._keys

    def __iter__(self) -> Iterator[str]:
        return iter(self._keys)

    def get(self, natural_id: str | None) -> int | None:
        if natural_id is None:
            return None
        return self._keys.get(natural_id)

    def update(self, keys: Mapping[str, int]) -> None:
        self._keys.update(keys)

    def sole(self) -> int | None:
        """The only surrogate key in the map, or None unless it has exactly one entry."""
        if len(self._keys) != 1:
            return None
        return next(iter(self._keys.values()))


class RemapTables:
    """The id maps an import builds as each table's keys come back from the store.

    Rebuilt from step checkpoints when a run resumes, so it never needs to be
    reloaded from the database.
    """

    def __init__(self) -> None:
        self.maps: dict[str, IdMap] = {name: IdMap(name) for name in (AGENCY, STOPS, ROUTES, TRIPS)}

    def __getitem__(self, name: str) -> IdMap:
        return self.maps[name]

    def record(self, name: str, keys: Mapping[str, int]) -> None:
        self.maps[name].update(keys)

    def resolve(self, ref: Reference, natural_id: str | None) -> int | None:
        id_map = self.maps[ref.id_map]
        if natural_id is None:
            return id_map.sole() if ref.sole_fallback else None
        return id_map.get(natural_id)
