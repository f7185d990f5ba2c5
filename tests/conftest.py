"""Pytest configuration: repository root on sys.path plus shared item factory."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]

root_str = str(ROOT)
if root_str not in sys.path:
    sys.path.insert(0, root_str)

from core.models import Item  # noqa: E402


@pytest.fixture
def make_item():
    """Build an Item with realistic defaults; override any field by keyword."""

    def _make(item_id: int, price: str = "12.50", **overrides) -> Item:
        fields = dict(
            id=item_id,
            name=f"SB{item_id}",
            description=("Intel Core i7-6700", "2x SSD SATA 512 GB"),
            traffic="unlimited",
            dist=("Rescue system",),
            arch=(64,),
            lang=("en",),
            cpu="Intel Core i7-6700",
            cpu_benchmark=10032,
            memory_size=64,
            hdd_size=512,
            hdd_text="2x SSD SATA 512 GB",
            hdd_count=2,
            datacenter="FSN1-DC14",
            network_speed="1 Gbit/s",
            fixed_price=False,
            price=price,
        )
        fields.update(overrides)
        return Item(**fields)

    return _make
