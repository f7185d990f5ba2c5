import json
import os
import re
import signal
import sys
from typing import Any, Dict, Tuple

from prometheus_client import CollectorRegistry, generate_latest, start_http_server

from core.collector import PriceCollector
from core.errors import ConfigError
from core.logger import get_logger
from core.refresher import Refresher
from core.registry import Registry
from fetchers import FETCHERS

logger = get_logger(__name__)

NAMESPACE_RE = re.compile(r"[a-zA-Z_][a-zA-Z0-9_]*")

DEFAULTS = {
    "LISTEN_ADDRESS": ":8080",
    "ROBOT_API_CREDENTIALS": "hetzner-robot-creds.json",
    "REFRESH_INTERVAL": "600",
    "REQUEST_TIMEOUT": "30",
    "PROVIDER": "hetzner",
    "METRIC_NAMESPACE": "hetzner",
    "MODE": "daemon",  # "daemon" or "once"
}


def _positive_int(name: str, raw: str) -> int:
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from None
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {value}")
    return value


def parse_listen_address(addr: str) -> Tuple[str, int]:
    """
    Split "host:port" into its parts. An empty host (":8080") listens on all
    interfaces; IPv6 hosts are written in brackets ("[::1]:8080").
    """
    host, sep, port = addr.rpartition(":")
    if not sep:
        raise ConfigError(f"listen address {addr!r} has no port")
    host = host.strip("[]") or "0.0.0.0"
    try:
        port_num = int(port)
    except ValueError:
        raise ConfigError(f"listen address {addr!r} has an invalid port") from None
    if not 0 < port_num < 65536:
        raise ConfigError(f"listen address {addr!r} has an out of range port")
    return host, port_num


def load_settings(env=None) -> Dict[str, Any]:
    env = os.environ if env is None else env
    raw = {key: env.get(key, default) for key, default in DEFAULTS.items()}

    mode = raw["MODE"].strip().lower()
    if mode not in ("daemon", "once"):
        raise ConfigError(f"MODE must be 'daemon' or 'once', got {raw['MODE']!r}")

    provider = raw["PROVIDER"].strip().lower()
    if provider not in FETCHERS:
        raise ConfigError(f"No fetcher registered for provider {provider!r}")

    namespace = raw["METRIC_NAMESPACE"].strip()
    if not NAMESPACE_RE.fullmatch(namespace):
        raise ConfigError(f"METRIC_NAMESPACE is not a valid metric name prefix: {namespace!r}")

    host, port = parse_listen_address(raw["LISTEN_ADDRESS"])
    return {
        "host": host,
        "port": port,
        "credentials_path": raw["ROBOT_API_CREDENTIALS"],
        "refresh_interval": _positive_int("REFRESH_INTERVAL", raw["REFRESH_INTERVAL"]),
        "request_timeout": _positive_int("REQUEST_TIMEOUT", raw["REQUEST_TIMEOUT"]),
        "provider": provider,
        "metric_namespace": namespace,
        "mode": mode,
    }


def load_credentials(path: str) -> Tuple[str, str]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            creds = json.load(f)
    except OSError as e:
        raise ConfigError(f"could not read API credentials at {path}: {e}") from e
    except ValueError as e:
        raise ConfigError(f"could not parse API credentials at {path}: {e}") from e

    if not isinstance(creds, dict):
        raise ConfigError("credentials file must contain a JSON object")
    username = creds.get("username")
    password = creds.get("password")
    if not isinstance(username, str) or not isinstance(password, str) or not username:
        raise ConfigError("credentials file needs string 'username' and 'password' keys")
    return username, password


def build(settings: Dict[str, Any]) -> Tuple[Refresher, CollectorRegistry]:
    username, password = load_credentials(settings["credentials_path"])
    fetch = FETCHERS[settings["provider"]](username, password, settings["request_timeout"])

    registry = Registry()
    metrics = CollectorRegistry()
    metrics.register(PriceCollector(registry, namespace=settings["metric_namespace"]))
    refresher = Refresher(fetch, registry, settings["refresh_interval"])
    return refresher, metrics


def run_once(settings: Dict[str, Any]) -> int:
    refresher, metrics = build(settings)
    ok = refresher.run_cycle()
    sys.stdout.write(generate_latest(metrics).decode("utf-8"))
    return 0 if ok else 1


def run_daemon(settings: Dict[str, Any]) -> None:
    refresher, metrics = build(settings)

    start_http_server(settings["port"], addr=settings["host"], registry=metrics)
    logger.info("Listening on %s:%d", settings["host"], settings["port"])
    logger.info("Metrics available under /metrics")

    signal.signal(signal.SIGTERM, lambda signum, frame: refresher.stop(timeout=0))
    thread = refresher.start()
    try:
        while thread.is_alive():
            thread.join(1.0)
    except KeyboardInterrupt:
        logger.info("Interrupted; shutting down.")
        refresher.stop(timeout=5)


def main() -> int:
    try:
        settings = load_settings()
        if settings["mode"] == "once":
            return run_once(settings)
        run_daemon(settings)
        return 0
    except ConfigError as e:
        logger.error("Invalid configuration: %s", e)
        return 1


if __name__ == "__main__":
    try:
        raise SystemExit(main())
    except Exception as e:
        logger.exception("Fatal exporter error: %s", e)
        raise SystemExit(2)
