# core/refresher.py
import datetime
import threading
import time
from typing import Callable, List, Optional

import pytz

from .errors import FetchError
from .logger import get_logger
from .models import Item
from .registry import Registry

logger = get_logger(__name__)

# Robot API allows 500 requests per hour.
MIN_SAFE_INTERVAL_SECONDS = 8

Fetcher = Callable[[], List[Item]]


def now_utc() -> datetime.datetime:
    return datetime.datetime.now(tz=pytz.UTC)


class Refresher:
    """
    Polls the catalog every `interval` seconds and diffs it into the registry.

    The first fetch happens as soon as the thread starts. A failed fetch is
    logged and the loop keeps ticking; nothing here ever stops it except stop().
    """

    def __init__(self, fetch: Fetcher, registry: Registry, interval: int):
        if interval < MIN_SAFE_INTERVAL_SECONDS:
            logger.warning(
                "Potential risk of exceeding API requests limit (500 per hour) "
                "if refresh interval < %d seconds. Current: %d seconds.",
                MIN_SAFE_INTERVAL_SECONDS, interval,
            )
        self.fetch = fetch
        self.registry = registry
        self.interval = interval
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def run_cycle(self, now: Optional[datetime.datetime] = None) -> bool:
        """
        Fetch once and apply the result. Returns False when the fetch failed,
        in which case the registry is left untouched.
        """
        now = now or now_utc()
        logger.debug("Fetching server market products at %s", now.isoformat(timespec="seconds"))
        try:
            products = self.fetch()
            if not isinstance(products, list):
                raise FetchError(f"fetcher returned {type(products).__name__}, expected a list")
            fetched_ids = {p.id for p in products}
        except FetchError as e:
            logger.error("Could not fetch server market products: %s", e)
            return False
        except Exception as e:
            logger.exception("Unexpected error fetching server market products: %s", e)
            return False

        logger.debug("Found %d products", len(products))

        # all inserts for this fetch land before reconcile runs
        for product in products:
            if self.registry.upsert_if_absent(product):
                logger.debug("Server %d was added", product.id)

        for iid in self.registry.reconcile(fetched_ids):
            logger.debug("Server %d was deleted", iid)
        return True

    def run(self) -> None:
        logger.info("Fetching Hetzner Robot API every %d seconds.", self.interval)
        next_tick = time.monotonic()
        while not self._stop.is_set():
            self.run_cycle()
            next_tick += self.interval
            delay = next_tick - time.monotonic()
            if delay < 0:
                # fetch overran the interval; drop the missed ticks
                next_tick = time.monotonic()
                delay = 0
            if self._stop.wait(delay):
                break
        logger.info("Refresher stopped.")

    def start(self) -> threading.Thread:
        if self._thread is not None and self._thread.is_alive():
            return self._thread
        self._stop.clear()
        self._thread = threading.Thread(target=self.run, name="refresher", daemon=True)
        self._thread.start()
        return self._thread

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()
