# core/collector.py
"""
Prometheus collector exposing server market prices.

Scrape contract
---------------
collect() is not a pure read. Each scrape first deletes the gauge sample of
every tombstoned item and then tells the registry to forget that item
(Registry.flush_tombstone). A removed server therefore disappears from the
exposition on the first scrape after it left the catalog, and is forgotten
only once its sample is gone. If nothing ever scrapes, tombstoned items are
never forgotten.

Items whose price cannot be parsed are skipped for that scrape with a
warning and stay live.
"""
import re
import threading
from typing import Iterable, List

from prometheus_client import Gauge
from prometheus_client.metrics_core import Metric

from .errors import PriceParseError
from .logger import get_logger
from .models import LABEL_NAMES, label_values
from .registry import Registry

logger = get_logger(__name__)

METRIC_NAMESPACE = "hetzner"
METRIC_SUBSYSTEM = "server_market"
METRIC_NAME = "price"
METRIC_DESCRIPTION = "Monthly price in euros"

# plain decimal, optional exponent, or inf/infinity/nan; no blanks or digit separators
PRICE_RE = re.compile(r"[+-]?(?:(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?|inf(?:inity)?)|nan", re.IGNORECASE)


def parse_price(raw: str, item_id: int | None = None) -> float:
    if not isinstance(raw, str) or not PRICE_RE.fullmatch(raw):
        raise PriceParseError(raw, item_id)
    try:
        value = float(raw)
    except (TypeError, ValueError):
        raise PriceParseError(raw, item_id) from None
    return value


class PriceCollector:
    """Custom collector backed by a single labelled gauge that is never registered on its own."""

    def __init__(self, registry: Registry, namespace: str = METRIC_NAMESPACE):
        self.registry = registry
        self.prices = Gauge(
            METRIC_NAME,
            METRIC_DESCRIPTION,
            labelnames=LABEL_NAMES,
            namespace=namespace,
            subsystem=METRIC_SUBSYSTEM,
            registry=None,
        )
        # serializes scrapes so a flush cannot interleave with another scrape's render
        self._lock = threading.Lock()

    def describe(self) -> Iterable[Metric]:
        return self.prices.describe()

    def collect(self) -> Iterable[Metric]:
        with self._lock:
            self._flush_tombstones()
            self._render_live()
            families: List[Metric] = list(self.prices.collect())
        yield from families

    def _flush_tombstones(self) -> None:
        for item in self.registry.snapshot_tombstoned():
            try:
                self.prices.remove(*label_values(item))
            except KeyError:
                # never exported, e.g. its price did not parse
                pass
            logger.debug("Collecting deleted server %d", item.id)
            self.registry.flush_tombstone(item.id)

    def _render_live(self) -> None:
        for item in self.registry.snapshot_live():
            try:
                price = parse_price(item.price, item.id)
            except PriceParseError as e:
                logger.warning("Server %d: %s", item.id, e)
                continue
            self.prices.labels(*label_values(item)).set(price)

