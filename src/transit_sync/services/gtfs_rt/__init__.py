"""GTFS-Realtime synchronization pipeline."""

from transit_sync.services.gtfs_rt.decoder import GtfsRtDecoder
from transit_sync.services.gtfs_rt.fetcher import RealtimeFetcher
from transit_sync.services.gtfs_rt.merger import RealtimeMerger
from transit_sync.services.gtfs_rt.normalizer import RealtimeNormalizer
from transit_sync.services.gtfs_rt.pacer import RateLimitPacer
from transit_sync.services.gtfs_rt.poller import RealtimePoller
from transit_sync.services.gtfs_rt.workflow import RealtimeSyncWorkflow
from transit_sync.services.gtfs_rt.writer import RealtimeWriter

__all__ = [
    "GtfsRtDecoder",
    "RateLimitPacer",
    "RealtimeFetcher",
    "RealtimeMerger",
    "RealtimeNormalizer",
    "RealtimePoller",
    "RealtimeSyncWorkflow",
    "RealtimeWriter",
]
