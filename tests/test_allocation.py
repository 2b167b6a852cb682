"""
Tests for `services/inventory_allocation_service.py`.

Covers:
- Candidate order: rank first, then price, then store order.
- Pending allocations reduce what other lines see, but persist nothing.
- Validation requires allocations to sum exactly to the requested quantity.
- Commit is all-or-nothing, hands out management numbers and removes
  depleted lots.
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from domain.errors import AllocationMismatch, InsufficientStock
from domain.rank import ConditionRank
from domain.sale import Allocation, SaleLine
from repositories.store import InMemoryLotStore
from services.inventory_allocation_service import InventoryAllocator

from conftest import PS5, build_lot


def _line(quantity: int, line_id: str = "1") -> SaleLine:
    return SaleLine(line_id=line_id, descriptor=PS5, requested_quantity=quantity, unit_price=Decimal("400.00"))


def test_candidates_prefer_rank_over_price() -> None:
    """A rank-A lot is listed before a cheaper rank-B lot; unranked lots come last."""

    store = InMemoryLotStore(
        [
            build_lot("LOT-B", quantity=2, price=30000, rank=ConditionRank.B),
            build_lot("LOT-A-EXPENSIVE", quantity=2, price=45000, rank=ConditionRank.A),
            build_lot("LOT-A-CHEAP", quantity=2, price=40000, rank=ConditionRank.A),
            build_lot("LOT-UNRANKED", quantity=2, price=10000, rank=None),
        ]
    )

    candidates = InventoryAllocator(store).list_candidates(_line(1))

    assert [lot.lot_id for lot in candidates] == ["LOT-A-CHEAP", "LOT-A-EXPENSIVE", "LOT-B", "LOT-UNRANKED"]


def test_candidates_skip_other_products_and_empty_lots() -> None:
    from dataclasses import replace

    store = InMemoryLotStore(
        [
            build_lot("LOT-SWITCH", quantity=2, price=1000, descriptor=replace(PS5, console="switch")),
            build_lot("LOT-PS5", quantity=1, price=1000),
        ]
    )

    candidates = InventoryAllocator(store).list_candidates(_line(1))

    assert [lot.lot_id for lot in candidates] == ["LOT-PS5"]


def test_pending_allocations_reduce_availability_for_other_lines() -> None:
    store = InMemoryLotStore([build_lot("LOT-1", quantity=3, price=1000)])
    allocator = InventoryAllocator(store)
    first, second = _line(2, "1"), _line(2, "2")

    allocator.allocate(first, "LOT-1", 2)

    with pytest.raises(InsufficientStock) as exc:
        allocator.allocate(second, "LOT-1", 2)
    assert exc.value.available == 1

    # Nothing was persisted.
    assert store.get("LOT-1").total_quantity == 3


def test_allocate_replaces_previous_quantity_for_same_line_and_lot() -> None:
    store = InMemoryLotStore([build_lot("LOT-1", quantity=3, price=1000)])
    allocator = InventoryAllocator(store)
    line = _line(3)

    allocator.allocate(line, "LOT-1", 1)
    allocator.allocate(line, "LOT-1", 3)

    assert allocator.pending("1") == [Allocation(line_id="1", lot_id="LOT-1", quantity=3)]


def test_allocate_rejects_unknown_or_mismatched_lot() -> None:
    from dataclasses import replace

    store = InMemoryLotStore([build_lot("LOT-SW", quantity=1, price=1000, descriptor=replace(PS5, console="switch"))])
    allocator = InventoryAllocator(store)

    with pytest.raises(ValueError):
        allocator.allocate(_line(1), "LOT-MISSING", 1)
    with pytest.raises(ValueError):
        allocator.allocate(_line(1), "LOT-SW", 1)


def test_validate_requires_exact_sum() -> None:
    """Scenario B: requesting 5 with 4 selected is a mismatch and commits nothing."""

    store = InMemoryLotStore(
        [build_lot("LOT-1", quantity=3, price=1000), build_lot("LOT-2", quantity=3, price=1200)]
    )
    allocator = InventoryAllocator(store)
    line = _line(5)
    allocator.allocate(line, "LOT-1", 3)
    allocator.allocate(line, "LOT-2", 1)

    with pytest.raises(AllocationMismatch) as exc:
        allocator.validate(line)

    assert exc.value.requested == 5
    assert exc.value.selected == 4
    assert store.get("LOT-1").total_quantity == 3
    assert store.get("LOT-2").total_quantity == 3


def test_suggest_fills_in_candidate_order() -> None:
    store = InMemoryLotStore(
        [
            build_lot("LOT-B", quantity=5, price=20000, rank=ConditionRank.B),
            build_lot("LOT-S", quantity=2, price=50000, rank=ConditionRank.S),
        ]
    )

    plan = InventoryAllocator(store).suggest(_line(4))

    assert plan == [
        Allocation(line_id="1", lot_id="LOT-S", quantity=2),
        Allocation(line_id="1", lot_id="LOT-B", quantity=2),
    ]


def test_commit_applies_all_changes_and_removes_depleted_lots() -> None:
    store = InMemoryLotStore(
        [
            build_lot("LOT-1", quantity=3, price=1000, management_numbers=["A1", "A2", "A3"]),
            build_lot("LOT-2", quantity=3, price=1200, management_numbers=["B1", "B2", "B3"]),
        ]
    )
    allocator = InventoryAllocator(store)
    line = _line(5)
    allocator.allocate(line, "LOT-1", 3)
    allocator.allocate(line, "LOT-2", 2)

    result = allocator.commit(allocator.validate(line))

    assert store.get("LOT-1") is None
    assert store.get("LOT-2").total_quantity == 1
    assert store.get("LOT-2").management_numbers == ("B3",)
    assert result.removed_lot_ids == ["LOT-1"]
    assert [item.management_numbers for item in result.committed] == [("A1", "A2", "A3"), ("B1", "B2")]
    assert result.total_cost_jpy == 3 * 1000 + 2 * 1200
    assert allocator.pending("1") == []


def test_commit_is_all_or_nothing() -> None:
    """One allocation that no longer fits aborts the whole commit."""

    store = InMemoryLotStore(
        [build_lot("LOT-1", quantity=3, price=1000), build_lot("LOT-2", quantity=1, price=1200)]
    )
    allocator = InventoryAllocator(store)

    with pytest.raises(InsufficientStock):
        allocator.commit(
            [
                Allocation(line_id="1", lot_id="LOT-1", quantity=2),
                Allocation(line_id="1", lot_id="LOT-2", quantity=2),
            ]
        )

    assert store.get("LOT-1").total_quantity == 3
    assert store.get("LOT-2").total_quantity == 1


def test_commit_sums_allocations_per_lot_before_checking_stock() -> None:
    store = InMemoryLotStore([build_lot("LOT-1", quantity=3, price=1000)])
    allocator = InventoryAllocator(store)

    with pytest.raises(InsufficientStock):
        allocator.commit(
            [
                Allocation(line_id="1", lot_id="LOT-1", quantity=2),
                Allocation(line_id="2", lot_id="LOT-1", quantity=2),
            ]
        )


def test_commit_warns_when_management_numbers_run_out() -> None:
    store = InMemoryLotStore([build_lot("LOT-1", quantity=3, price=1000, management_numbers=["A1"])])
    allocator = InventoryAllocator(store)

    result = allocator.commit([Allocation(line_id="1", lot_id="LOT-1", quantity=2)])

    assert result.committed[0].management_numbers == ("A1",)
    assert len(result.warnings) == 1
    assert result.warnings[0].assigned == 1
    assert store.get("LOT-1").total_quantity == 1


def test_commit_rejects_empty_allocations() -> None:
    with pytest.raises(ValueError):
        InventoryAllocator(InMemoryLotStore()).commit([])
