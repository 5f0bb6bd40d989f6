"""Counter Repository - Atomic sequences for human readable identifiers"""
from typing import Optional
from pymongo.collection import Collection
from pymongo import ReturnDocument

from .mongo_client import get_collection
from ..config.settings import settings
from ..utils.idgen import format_ticket_number
from ..utils.logger import get_logger

logger = get_logger(__name__)


class CounterRepository:
    """
    Sequence documents shaped {_id: <name>, sequence: <int>}

    Every increment is a single find_one_and_update, so concurrent callers
    can never read the same value.
    """

    def __init__(self):
        self._counters: Collection = get_collection("counters")

    def next_sequence(self, counter_id: str) -> int:
        """Increment and return the new value, creating the counter at 1"""
        doc = self._counters.find_one_and_update(
            {"_id": counter_id},
            {"$inc": {"sequence": 1}},
            upsert=True,
            return_document=ReturnDocument.AFTER
        )
        return int(doc["sequence"])

    def current_sequence(self, counter_id: str) -> Optional[int]:
        doc = self._counters.find_one({"_id": counter_id})
        return int(doc["sequence"]) if doc else None

    def raise_to(self, counter_id: str, value: int) -> int:
        """Move the counter up to `value`; never moves it down"""
        doc = self._counters.find_one_and_update(
            {"_id": counter_id},
            {"$max": {"sequence": value}},
            upsert=True,
            return_document=ReturnDocument.AFTER
        )
        sequence = int(doc["sequence"])
        logger.info(
            f"Counter {counter_id} synced to {sequence}",
            extra={"action": "counter_sync"}
        )
        return sequence

    def next_ticket_number(self) -> str:
        """Allocate the next ticket number, e.g. TKT0043"""
        sequence = self.next_sequence(settings.ticket_counter_id)
        return format_ticket_number(
            sequence,
            prefix=settings.ticket_number_prefix,
            width=settings.ticket_number_width
        )
