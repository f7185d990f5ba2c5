# fetchers/hetzner.py
import functools
import json
import os
import time
from typing import Any, Callable, Dict, List, Tuple

import requests

from core.errors import FetchError
from core.logger import get_logger
from core.models import Item

logger = get_logger(__name__)

ROBOT_API_URL = os.getenv("ROBOT_API_URL", "https://robot-ws.your-server.de").rstrip("/")
SERVER_MARKET_PATH = "/order/server_market/product"
USER_AGENT = os.getenv("ROBOT_USER_AGENT", "hetzner-server-market-exporter")
DEFAULT_TIMEOUT = 30
READ_CHUNK_SIZE = 64 * 1024


def make_session(username: str, password: str) -> requests.Session:
    session = requests.Session()
    session.auth = (username, password)
    session.headers.update({"User-Agent": USER_AGENT, "Accept": "application/json"})
    return session


def _str_tuple(value: Any) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, (list, tuple)):
        return tuple(str(v) for v in value)
    return (str(value),)


def _int(value: Any, field: str) -> int:
    if value is None or value == "":
        return 0
    try:
        return int(value)
    except (TypeError, ValueError):
        raise FetchError(f"field {field!r} is not an integer: {value!r}") from None


def parse_product(raw: Dict[str, Any]) -> Item:
    """Convert one `product` object of the server market listing into an Item."""
    if not isinstance(raw, dict) or "id" not in raw:
        raise FetchError(f"malformed product record: {raw!r}")
    return Item(
        id=_int(raw["id"], "id"),
        name=str(raw.get("name") or ""),
        description=_str_tuple(raw.get("description")),
        traffic=str(raw.get("traffic") or ""),
        dist=_str_tuple(raw.get("dist")),
        arch=tuple(_int(a, "arch") for a in (raw.get("arch") or [])),
        lang=_str_tuple(raw.get("lang")),
        cpu=str(raw.get("cpu") or ""),
        cpu_benchmark=_int(raw.get("cpu_benchmark"), "cpu_benchmark"),
        memory_size=_int(raw.get("memory_size"), "memory_size"),
        hdd_size=_int(raw.get("hdd_size"), "hdd_size"),
        hdd_text=str(raw.get("hdd_text") or ""),
        hdd_count=_int(raw.get("hdd_count"), "hdd_count"),
        datacenter=str(raw.get("datacenter") or ""),
        network_speed=str(raw.get("network_speed") or ""),
        fixed_price=bool(raw.get("fixed_price", False)),
        price=str(raw.get("price_vat") or ""),
    )


def _error_code(payload: Any) -> str:
    if isinstance(payload, dict) and isinstance(payload.get("error"), dict):
        return str(payload["error"].get("code") or "")
    return ""


def _read_body(resp: requests.Response, url: str, deadline: float) -> bytes:
    """
    Read the streamed body, giving up once the overall deadline has passed.
    The requests timeout only bounds each connect and read, not the whole call.
    """
    chunks: List[bytes] = []
    try:
        for chunk in resp.iter_content(chunk_size=READ_CHUNK_SIZE):
            if time.monotonic() > deadline:
                raise FetchError(f"deadline exceeded while reading response from {url}")
            chunks.append(chunk)
    except requests.RequestException as e:
        raise FetchError(f"reading response from {url} failed: {e}") from e
    finally:
        resp.close()
    return b"".join(chunks)


def fetch_items(session: requests.Session, timeout: float = DEFAULT_TIMEOUT) -> List[Item]:
    """
    Fetch the full server market listing within `timeout` seconds in total.
    Raises FetchError on any transport, deadline, status or decoding problem;
    an empty market is returned as [].
    """
    url = f"{ROBOT_API_URL}{SERVER_MARKET_PATH}"
    logger.debug("Fetching server market: %s", url)
    deadline = time.monotonic() + timeout
    try:
        resp = session.get(url, timeout=timeout, stream=True)
    except requests.RequestException as e:
        raise FetchError(f"request to {url} failed: {e}") from e
    body = _read_body(resp, url, deadline)

    try:
        payload = json.loads(body)
        decode_error = None
    except ValueError as e:
        payload, decode_error = None, e

    if resp.status_code == 404 and _error_code(payload) == "NOT_FOUND":
        logger.info("Server market is empty.")
        return []
    if resp.status_code != 200:
        code = _error_code(payload)
        raise FetchError(
            f"Robot API returned status {resp.status_code}" + (f" ({code})" if code else "")
        )
    if decode_error is not None:
        raise FetchError(f"invalid JSON from {url}: {decode_error}")
    if not isinstance(payload, list):
        raise FetchError(f"unexpected payload type {type(payload).__name__}")

    items: List[Item] = []
    for entry in payload:
        raw = entry.get("product") if isinstance(entry, dict) else None
        items.append(parse_product(raw))
    return items


def build_fetcher(username: str, password: str, timeout: float = DEFAULT_TIMEOUT) -> Callable[[], List[Item]]:
    return functools.partial(fetch_items, make_session(username, password), timeout)
