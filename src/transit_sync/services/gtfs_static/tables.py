"""Per-table load specifications and the dependency-ordered import sequence."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Optional

from transit_sync.services.gtfs_static import records as r
from transit_sync.services.gtfs_static.normalizer import required_columns

# Id maps built during an import, keyed by the natural id of the target table.
AGENCY = "agency"
STOPS = "stops"
ROUTES = "routes"
TRIPS = "trips"

# Chunk size settings for tables read in byte ranges.
CHUNK_COARSE = "import_chunk_bytes"
CHUNK_FINE = "import_fine_chunk_bytes"


@dataclass(frozen=True)
class Reference:
    """A record field holding another table's natural id.

    ``column`` receives the resolved surrogate key. An unresolved required
    reference drops the row; an unresolved optional one stores NULL.
    ``sole_fallback`` uses the only entry of the map when the field is empty.
    """

    field: str
    id_map: str
    column: str
    required: bool = False
    sole_fallback: bool = False


@dataclass(frozen=True)
class TableSpec:
    table: str
    filename: str
    record: type
    conflict: tuple[str, ...] = ()
    key_column: Optional[str] = None
    natural_key: Optional[str] = None
    id_map: Optional[str] = None
    references: tuple[Reference, ...] = ()
    deferred: tuple[str, ...] = ()
    chunking: Optional[str] = None
    update: bool = True
    replace: bool = False
    required_file: bool = False

    @property
    def record_fields(self) -> tuple[str, ...]:
        return tuple(f.name for f in dataclasses.fields(self.record))

    @property
    def columns(self) -> tuple[str, ...]:
        """Columns written by the loader, in statement order."""
        skipped = {ref.field for ref in self.references} | set(self.deferred)
        return (
            "feed_version_id",
            *(name for name in self.record_fields if name not in skipped),
            *(ref.column for ref in self.references),
        )

    @property
    def required_columns(self) -> tuple[str, ...]:
        return required_columns(self.record)


def _natural(
    table: str, filename: str, record: type, natural_key: str, key_column: str, **kw
) -> TableSpec:
    return TableSpec(
        table=table,
        filename=filename,
        record=record,
        conflict=("feed_version_id", natural_key),
        key_column=key_column,
        natural_key=natural_key,
        **kw,
    )


def _replace(table: str, filename: str, record: type, **kw) -> TableSpec:
    return TableSpec(table=table, filename=filename, record=record, replace=True, **kw)


def _link(table: str, filename: str, record: type, *keys: str) -> TableSpec:
    return TableSpec(
        table=table,
        filename=filename,
        record=record,
        conflict=("feed_version_id", *keys),
        update=False,
    )


TABLES: dict[str, TableSpec] = {
    spec.table: spec
    for spec in (
        TableSpec(
            table="feed_info",
            filename="feed_info.txt",
            record=r.FeedInfoRecord,
            conflict=("feed_version_id",),
        ),
        _natural("agency", "agency.txt", r.AgencyRecord, "agency_id", "agency_pk", id_map=AGENCY),
        _natural(
            "stops",
            "stops.txt",
            r.StopRecord,
            "stop_id",
            "stop_pk",
            id_map=STOPS,
            deferred=("parent_station",),
            chunking=CHUNK_COARSE,
            required_file=True,
        ),
        _natural("levels", "levels.txt", r.LevelRecord, "level_id", "level_pk"),
        _natural(
            "routes",
            "routes.txt",
            r.RouteRecord,
            "route_id",
            "route_pk",
            id_map=ROUTES,
            references=(Reference("agency_id", AGENCY, "agency_pk", sole_fallback=True),),
            required_file=True,
        ),
        _natural("calendar", "calendar.txt", r.CalendarRecord, "service_id", "service_pk"),
        TableSpec(
            table="calendar_dates",
            filename="calendar_dates.txt",
            record=r.CalendarDateRecord,
            conflict=("feed_version_id", "service_id", "date"),
        ),
        _natural(
            "trips",
            "trips.txt",
            r.TripRecord,
            "trip_id",
            "trip_pk",
            id_map=TRIPS,
            references=(Reference("route_id", ROUTES, "route_pk", required=True),),
            chunking=CHUNK_COARSE,
            required_file=True,
        ),
        TableSpec(
            table="stop_times",
            filename="stop_times.txt",
            record=r.StopTimeRecord,
            conflict=("trip_pk", "stop_sequence"),
            references=(
                Reference("trip_id", TRIPS, "trip_pk", required=True),
                Reference("stop_id", STOPS, "stop_pk", required=True),
            ),
            chunking=CHUNK_FINE,
            required_file=True,
        ),
        TableSpec(
            table="shapes",
            filename="shapes.txt",
            record=r.ShapePointRecord,
            conflict=("feed_version_id", "shape_id", "shape_pt_sequence"),
            chunking=CHUNK_FINE,
        ),
        _natural(
            "fare_attributes",
            "fare_attributes.txt",
            r.FareAttributeRecord,
            "fare_id",
            "fare_pk",
            references=(Reference("agency_id", AGENCY, "agency_pk", sole_fallback=True),),
        ),
        _replace("fare_rules", "fare_rules.txt", r.FareRuleRecord),
        _replace(
            "transfers",
            "transfers.txt",
            r.TransferRecord,
            references=(
                Reference("from_stop_id", STOPS, "from_stop_pk", required=True),
                Reference("to_stop_id", STOPS, "to_stop_pk", required=True),
                Reference("from_route_id", ROUTES, "from_route_pk"),
                Reference("to_route_id", ROUTES, "to_route_pk"),
                Reference("from_trip_id", TRIPS, "from_trip_pk"),
                Reference("to_trip_id", TRIPS, "to_trip_pk"),
            ),
        ),
        _replace(
            "frequencies",
            "frequencies.txt",
            r.FrequencyRecord,
            references=(Reference("trip_id", TRIPS, "trip_pk", required=True),),
        ),
        _replace(
            "attributions",
            "attributions.txt",
            r.AttributionRecord,
            references=(
                Reference("agency_id", AGENCY, "agency_pk"),
                Reference("route_id", ROUTES, "route_pk"),
                Reference("trip_id", TRIPS, "trip_pk"),
            ),
        ),
        _natural(
            "pathways",
            "pathways.txt",
            r.PathwayRecord,
            "pathway_id",
            "pathway_pk",
            references=(
                Reference("from_stop_id", STOPS, "from_stop_pk", required=True),
                Reference("to_stop_id", STOPS, "to_stop_pk", required=True),
            ),
        ),
        _natural("areas", "areas.txt", r.AreaRecord, "area_id", "area_pk"),
        _link("stop_areas", "stop_areas.txt", r.StopAreaRecord, "area_id", "stop_id"),
        _natural("networks", "networks.txt", r.NetworkRecord, "network_id", "network_pk"),
        _link(
            "route_networks", "route_networks.txt", r.RouteNetworkRecord, "network_id", "route_id"
        ),
        _replace("timeframes", "timeframes.txt", r.TimeframeRecord),
        _natural(
            "rider_categories",
            "rider_categories.txt",
            r.RiderCategoryRecord,
            "rider_category_id",
            "rider_category_pk",
        ),
        _natural(
            "fare_media", "fare_media.txt", r.FareMediaRecord, "fare_media_id", "fare_media_pk"
        ),
        _replace("fare_products", "fare_products.txt", r.FareProductRecord),
        _replace("fare_leg_rules", "fare_leg_rules.txt", r.FareLegRuleRecord),
        _replace("fare_leg_join_rules", "fare_leg_join_rules.txt", r.FareLegJoinRuleRecord),
        _replace("fare_transfer_rules", "fare_transfer_rules.txt", r.FareTransferRuleRecord),
        _natural(
            "location_groups",
            "location_groups.txt",
            r.LocationGroupRecord,
            "location_group_id",
            "location_group_pk",
        ),
        _link(
            "location_group_stops",
            "location_group_stops.txt",
            r.LocationGroupStopRecord,
            "location_group_id",
            "stop_id",
        ),
        _natural(
            "booking_rules",
            "booking_rules.txt",
            r.BookingRuleRecord,
            "booking_rule_id",
            "booking_rule_pk",
        ),
        _replace("translations", "translations.txt", r.TranslationRecord),
    )
}

IMPORT_ORDER: tuple[str, ...] = tuple(TABLES)

REQUIRED_FILES: tuple[str, ...] = tuple(
    spec.filename for spec in TABLES.values() if spec.required_file
)
