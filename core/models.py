# core/models.py
from dataclasses import dataclass
from typing import List, Tuple


@dataclass(frozen=True)
class Item:
    """
    One server market offering as returned by the Robot API.
    The price is kept exactly as the API sent it and parsed at export time.
    """
    id: int
    name: str = ""
    description: Tuple[str, ...] = ()
    traffic: str = ""
    dist: Tuple[str, ...] = ()
    arch: Tuple[int, ...] = ()
    lang: Tuple[str, ...] = ()
    cpu: str = ""
    cpu_benchmark: int = 0
    memory_size: int = 0
    hdd_size: int = 0
    hdd_text: str = ""
    hdd_count: int = 0
    datacenter: str = ""
    network_speed: str = ""
    fixed_price: bool = False
    price: str = ""


LABEL_NAMES: List[str] = [
    "id",
    "name",
    "description",
    "traffic",
    "dist",
    "arch",
    "lang",
    "cpu",
    "cpu_benchmark",
    "memory_size",
    "hdd_size",
    "hdd_text",
    "hdd_count",
    "datacenter",
    "network_speed",
    "fixed_price",
]

LIST_SEPARATOR = "; "


def _join(values) -> str:
    return LIST_SEPARATOR.join(str(v) for v in values)


def label_values(item: Item) -> List[str]:
    """Render an item's attributes in LABEL_NAMES order."""
    return [
        str(item.id),
        item.name,
        _join(item.description),
        item.traffic,
        _join(item.dist),
        _join(item.arch),
        _join(item.lang),
        item.cpu,
        str(item.cpu_benchmark),
        str(item.memory_size),
        str(item.hdd_size),
        item.hdd_text,
        str(item.hdd_count),
        item.datacenter,
        item.network_speed,
        "true" if item.fixed_price else "false",
    ]
