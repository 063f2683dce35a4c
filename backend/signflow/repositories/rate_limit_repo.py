"""Rate Limit Repository - Fixed-window counters shared by all workers"""
from datetime import datetime, timedelta, timezone

from pymongo import ReturnDocument
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from .mongo_client import RATE_LIMITS_COLLECTION, to_storage
from ..utils.logger import get_logger

logger = get_logger(__name__)


class RateLimitRepository:
    """
    Per-key hit counters bucketed into fixed windows.

    The counter document for (key, window_start) is upserted with $inc, so
    concurrent hits from any number of processes are counted exactly once.
    Expired windows are removed by the TTL index on expires_at.
    """

    def __init__(self, db: Database):
        self._limits: Collection = db[RATE_LIMITS_COLLECTION]

    @staticmethod
    def window_start(now: datetime, window_seconds: int) -> datetime:
        epoch = int(now.timestamp())
        return datetime.fromtimestamp(epoch - epoch % window_seconds, tz=timezone.utc)

    def hit(self, key: str, now: datetime, window_seconds: int) -> int:
        """Count one hit and return the total for the current window"""
        start = self.window_start(now, window_seconds)
        query = {"key": key, "window_start": to_storage(start)}
        update = {
            "$inc": {"count": 1},
            "$setOnInsert": {"expires_at": to_storage(start + timedelta(seconds=window_seconds))},
        }
        try:
            doc = self._limits.find_one_and_update(
                query, update, upsert=True, return_document=ReturnDocument.AFTER
            )
        except DuplicateKeyError:
            # Lost the insert race; the document exists now
            doc = self._limits.find_one_and_update(
                query, update, return_document=ReturnDocument.AFTER
            )
        return doc["count"]
