"""
Tests for `domain/lot.py`, `domain/rank.py` and `domain/product.py`.

Covers contract rules:
- 0 <= allocated <= total, and available is never negative.
- Consuming units hands out management numbers from the front of the list.
- registered_at must be a UTC timestamp.
- Rank order S > A > B > C > D, unranked last.
"""

from __future__ import annotations

from dataclasses import FrozenInstanceError, replace
from datetime import datetime, timedelta, timezone

import pytest

from domain.product import ProductDescriptor, ProductSnapshot, ProductType
from domain.rank import ConditionRank, rank_sort_order

from conftest import PS5, build_lot


def test_lot_rejects_allocated_above_total() -> None:
    """Verify allocated_quantity can never exceed total_quantity."""

    lot = build_lot("LOT-1", quantity=2, price=1000)

    with pytest.raises(ValueError):
        replace(lot, allocated_quantity=3)

    with pytest.raises(ValueError):
        replace(lot, allocated_quantity=-1)


def test_lot_registered_at_must_be_utc() -> None:
    """Verify registered_at enforces a UTC timezone-aware timestamp."""

    with pytest.raises(ValueError):
        build_lot("LOT-1", quantity=1, price=1000, registered_at=datetime(2025, 1, 1))

    with pytest.raises(ValueError):
        build_lot(
            "LOT-1",
            quantity=1,
            price=1000,
            registered_at=datetime(2025, 1, 1, tzinfo=timezone(timedelta(hours=9))),
        )


def test_consume_takes_management_numbers_from_front() -> None:
    lot = build_lot("LOT-1", quantity=3, price=1000, management_numbers=["M1", "M2", "M3"])

    updated, numbers, shortfall = lot.consume(2)

    assert numbers == ("M1", "M2")
    assert shortfall == 0
    assert updated.total_quantity == 1
    assert updated.management_numbers == ("M3",)
    assert lot.total_quantity == 3  # original untouched


def test_consume_reports_management_number_shortfall() -> None:
    lot = build_lot("LOT-1", quantity=3, price=1000, management_numbers=["M1"])

    updated, numbers, shortfall = lot.consume(3)

    assert numbers == ("M1",)
    assert shortfall == 2
    assert updated.is_depleted


def test_consume_more_than_available_raises() -> None:
    lot = build_lot("LOT-1", quantity=2, price=1000)

    with pytest.raises(ValueError):
        lot.consume(3)
    with pytest.raises(ValueError):
        lot.consume(0)


def test_lot_is_immutable() -> None:
    lot = build_lot("LOT-1", quantity=2, price=1000)

    with pytest.raises(FrozenInstanceError):
        lot.total_quantity = 5  # type: ignore[misc]


def test_rank_order_and_unranked_last() -> None:
    ranks = [None, ConditionRank.D, ConditionRank.S, ConditionRank.B]

    ordered = sorted(ranks, key=rank_sort_order)

    assert ordered == [ConditionRank.S, ConditionRank.B, ConditionRank.D, None]


def test_rank_parse_handles_unknown_values() -> None:
    assert ConditionRank.parse(" a ") == ConditionRank.A
    assert ConditionRank.parse("未評価") is None
    assert ConditionRank.parse("") is None
    assert ConditionRank.parse(None) is None


def test_descriptor_matching_rules() -> None:
    """Console must match; color only when requested; software must match its title."""

    white = replace(PS5, color="white")
    black = replace(PS5, color="black")

    assert PS5.matches(white)
    assert white.matches(white)
    assert not white.matches(black)
    assert not PS5.matches(replace(PS5, console="switch"))

    game = ProductDescriptor(product_type=ProductType.SOFTWARE, console="switch", software_name="Zelda")
    assert game.matches(replace(game, color="red"))
    assert not game.matches(replace(game, software_name="Mario"))


def test_snapshot_features_include_color_and_rank() -> None:
    snapshot = ProductSnapshot(descriptor=replace(PS5, color_label="ホワイト"), rank=ConditionRank.B)

    assert snapshot.features == "ホワイト Rank:B"
    assert snapshot.display_title == "PlayStation 5"
