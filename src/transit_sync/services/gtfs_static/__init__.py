"""Static GTFS import pipeline."""

from transit_sync.services.gtfs_static.archive import GtfsArchive
from transit_sync.services.gtfs_static.fetcher import ArchiveFetcher
from transit_sync.services.gtfs_static.loader import TableLoader
from transit_sync.services.gtfs_static.normalizer import RowNormalizer
from transit_sync.services.gtfs_static.parser import ChunkedTableReader
from transit_sync.services.gtfs_static.remap import RemapTables
from transit_sync.services.gtfs_static.versions import FeedVersionManager
from transit_sync.services.gtfs_static.workflow import StaticImportWorkflow

__all__ = [
    "ArchiveFetcher",
    "ChunkedTableReader",
    "FeedVersionManager",
    "GtfsArchive",
    "RemapTables",
    "RowNormalizer",
    "StaticImportWorkflow",
    "TableLoader",
]
