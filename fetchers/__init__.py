# fetchers/__init__.py
from . import hetzner

FETCHERS = {
    "hetzner": hetzner.build_fetcher,
}
