"""GTFS-RT protobuf decode layer."""

from __future__ import annotations

from google.protobuf.message import DecodeError
from google.transit import gtfs_realtime_pb2

from transit_sync.errors import FeedDecodeError
from transit_sync.logging import get_logger

logger = get_logger(__name__)


class GtfsRtDecoder:
    """Decodes raw protobuf bytes into GTFS-RT FeedMessage objects."""

    @staticmethod
    def decode(data: bytes, feed_type: str, poll_id: str) -> gtfs_realtime_pb2.FeedMessage:
        """Decode protobuf bytes into a FeedMessage.

        Raises:
            FeedDecodeError: If protobuf parsing fails.
        """
        try:
            feed = gtfs_realtime_pb2.FeedMessage()
            feed.ParseFromString(data)
        except DecodeError as exc:
            msg = f"Failed to decode {feed_type} protobuf"
            logger.error(msg, feed_type=feed_type, poll_id=poll_id, error=str(exc))
            raise FeedDecodeError(msg) from exc

        logger.info(
            "GTFS-RT feed decoded",
            feed_type=feed_type,
            poll_id=poll_id,
            entity_count=len(feed.entity),
            feed_timestamp=GtfsRtDecoder.get_feed_timestamp(feed),
            gtfs_rt_version=feed.header.gtfs_realtime_version,
        )
        return feed

    @staticmethod
    def get_feed_timestamp(feed: gtfs_realtime_pb2.FeedMessage) -> int:
        """Header timestamp in unix seconds, or 0 if not set."""
        return feed.header.timestamp if feed.header.timestamp else 0

    @staticmethod
    def get_entity_count(feed: gtfs_realtime_pb2.FeedMessage) -> int:
        return len(feed.entity)
