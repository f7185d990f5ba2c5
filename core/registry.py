# core/registry.py
import threading
from typing import Dict, Iterable, List, Set

from .logger import get_logger
from .models import Item

logger = get_logger(__name__)


class Registry:
    """
    In-memory set of offered items, keyed by product id.

    - live: items seen in the catalog and not yet observed missing.
    - tombstoned: items missing from the latest catalog whose metric
      sample has not been deleted by a scrape yet.

    An id is in at most one of the two maps. Every method takes the same
    lock; snapshots are copies so callers render without holding it.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._live: Dict[int, Item] = {}
        self._tombstoned: Dict[int, Item] = {}

    def upsert_if_absent(self, item: Item) -> bool:
        """
        Insert item unless its id is already known. First-seen wins: a later
        record with the same id and different price or attributes is ignored.
        An id still waiting for its tombstone flush is not re-inserted until
        the flush has happened.
        """
        with self._lock:
            if item.id in self._live:
                return False
            if item.id in self._tombstoned:
                logger.debug("Server %d reappeared before its tombstone was flushed.", item.id)
                return False
            self._live[item.id] = item
            return True

    def reconcile(self, current_ids: Iterable[int]) -> List[int]:
        """
        Move every live id not present in current_ids to the tombstoned map.
        Returns the moved ids. Ids only present in current_ids are left to
        upsert_if_absent.
        """
        current: Set[int] = set(current_ids)
        with self._lock:
            gone = [iid for iid in self._live if iid not in current]
            for iid in gone:
                self._tombstoned[iid] = self._live.pop(iid)
        return gone

    def snapshot_live(self) -> List[Item]:
        with self._lock:
            return list(self._live.values())

    def snapshot_tombstoned(self) -> List[Item]:
        with self._lock:
            return list(self._tombstoned.values())

    def flush_tombstone(self, item_id: int) -> None:
        """
        Forget a tombstoned id for good. Must only be called once the
        exported sample for that item has been deleted.
        """
        with self._lock:
            self._tombstoned.pop(item_id, None)

    def live_ids(self) -> Set[int]:
        with self._lock:
            return set(self._live)

    def tombstoned_ids(self) -> Set[int]:
        with self._lock:
            return set(self._tombstoned)

    def __len__(self) -> int:
        with self._lock:
            return len(self._live)
