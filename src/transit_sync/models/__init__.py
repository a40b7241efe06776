"""SQLAlchemy models for the transit sync schema."""

from transit_sync.models.base import Base
from transit_sync.models.extensions import (
    Area,
    BookingRule,
    FareLegJoinRule,
    FareLegRule,
    FareMedia,
    FareProduct,
    FareTransferRule,
    LocationGroup,
    LocationGroupStop,
    Network,
    RiderCategory,
    RouteNetwork,
    StopArea,
    Timeframe,
    Translation,
)
from transit_sync.models.feeds import FeedSource, FeedVersion
from transit_sync.models.realtime import (
    RealtimeIngestStatus,
    ServiceAlert,
    TripUpdate,
    VehiclePosition,
)
from transit_sync.models.static import (
    Agency,
    Attribution,
    Calendar,
    CalendarDate,
    FareAttribute,
    FareRule,
    FeedInfo,
    Frequency,
    Level,
    Pathway,
    Route,
    ShapePoint,
    Stop,
    StopTime,
    Transfer,
    Trip,
)
from transit_sync.models.workflow import WorkflowRun, WorkflowStep

__all__ = [
    "Agency",
    "Area",
    "Attribution",
    "Base",
    "BookingRule",
    "Calendar",
    "CalendarDate",
    "FareAttribute",
    "FareLegJoinRule",
    "FareLegRule",
    "FareMedia",
    "FareProduct",
    "FareRule",
    "FareTransferRule",
    "FeedInfo",
    "FeedSource",
    "FeedVersion",
    "Frequency",
    "Level",
    "LocationGroup",
    "LocationGroupStop",
    "Network",
    "Pathway",
    "RealtimeIngestStatus",
    "RiderCategory",
    "Route",
    "RouteNetwork",
    "ServiceAlert",
    "ShapePoint",
    "Stop",
    "StopArea",
    "StopTime",
    "Timeframe",
    "Transfer",
    "Translation",
    "Trip",
    "TripUpdate",
    "VehiclePosition",
    "WorkflowRun",
    "WorkflowStep",
]
