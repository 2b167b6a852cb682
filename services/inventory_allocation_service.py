"""
Lot-level inventory allocation service.

Decides which physical lots fill each sale line and is the only component
allowed to change lot quantities.

Key Features:
- Candidate ordering: best condition rank first, then cheapest acquisition
  price, then store order
- Pending allocations are previews only; nothing is persisted until commit
- Commit re-reads every lot, validates all allocations, then writes every lot
  change in a single store call (all-or-nothing)
- Management numbers are handed out from the front of each lot's list
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from domain.errors import AllocationMismatch, InsufficientStock, ManagementNumbersExhausted
from domain.lot import InventoryLot
from domain.rank import rank_sort_order
from domain.sale import Allocation, SaleLine
from repositories.store import LotStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CommittedAllocation:
    """One allocation after commit, with what it took from the lot."""

    allocation: Allocation
    lot: InventoryLot  # lot as it was before the commit
    management_numbers: tuple[str, ...]

    @property
    def unit_cost_jpy(self) -> int:
        return self.lot.acquisition_unit_price

    @property
    def cost_jpy(self) -> int:
        return self.lot.acquisition_unit_price * self.allocation.quantity


@dataclass(frozen=True, slots=True)
class CommitResult:
    committed: List[CommittedAllocation]
    updated_lots: List[InventoryLot]
    removed_lot_ids: List[str]
    warnings: List[ManagementNumbersExhausted]

    @property
    def total_cost_jpy(self) -> int:
        return sum(item.cost_jpy for item in self.committed)


def _candidate_key(indexed: tuple[int, InventoryLot]) -> tuple[int, int, int]:
    position, lot = indexed
    return (rank_sort_order(lot.rank), lot.acquisition_unit_price, position)


class InventoryAllocator:
    """
    Allocates lots to sale lines.

    Pending allocations are kept per line and per lot. They reserve nothing in
    the store; they only make previews for other lines see reduced
    availability. Quantities change only in `commit`.
    """

    def __init__(self, lots: LotStore):
        self._lots = lots
        self._pending: Dict[str, "OrderedDict[str, int]"] = {}

    def _pending_elsewhere(self, lot_id: str, line_id: str) -> int:
        return sum(
            by_lot.get(lot_id, 0) for other_line, by_lot in self._pending.items() if other_line != line_id
        )

    def preview_available(self, lot: InventoryLot, line_id: str = "") -> int:
        """Available units of `lot` after other lines' pending allocations."""

        return max(lot.available_quantity - self._pending_elsewhere(lot.lot_id, line_id), 0)

    def list_candidates(self, sale_line: SaleLine) -> List[InventoryLot]:
        """
        Lots that can fill `sale_line`, best first.

        Rank outranks price: a rank-A lot is listed before a cheaper rank-B lot.
        Lots with nothing available are left out.
        """

        matching = [
            (position, lot)
            for position, lot in enumerate(self._lots.list_lots())
            if sale_line.descriptor.matches(lot.descriptor) and lot.available_quantity > 0
        ]
        return [lot for _, lot in sorted(matching, key=_candidate_key)]

    def allocate(self, sale_line: SaleLine, lot_id: str, quantity: int) -> Allocation:
        """
        Record a pending allocation of `quantity` units from `lot_id`.

        Replaces any quantity this line already had pending on the same lot.

        Raises:
            ValueError: If quantity is not positive, the lot is unknown, or the
                lot does not match the line's product
            InsufficientStock: If the lot cannot cover the quantity after
                other lines' pending allocations
        """

        if quantity <= 0:
            raise ValueError("Allocation quantity must be > 0")

        lot = self._lots.get(lot_id)
        if lot is None:
            raise ValueError(f"Unknown lot: {lot_id}")
        if not sale_line.descriptor.matches(lot.descriptor):
            raise ValueError(f"Lot {lot_id} does not match the product of line {sale_line.line_id}")

        available = self.preview_available(lot, sale_line.line_id)
        if quantity > available:
            raise InsufficientStock(lot_id=lot_id, requested=quantity, available=available)

        self._pending.setdefault(sale_line.line_id, OrderedDict())[lot_id] = quantity
        return Allocation(line_id=sale_line.line_id, lot_id=lot_id, quantity=quantity)

    def release(self, line_id: str, lot_id: Optional[str] = None) -> None:
        """Drop pending allocations for a line (or only its allocation on one lot)."""

        if lot_id is None:
            self._pending.pop(line_id, None)
            return
        by_lot = self._pending.get(line_id)
        if by_lot is not None:
            by_lot.pop(lot_id, None)
            if not by_lot:
                del self._pending[line_id]

    def pending(self, line_id: str) -> List[Allocation]:
        return [
            Allocation(line_id=line_id, lot_id=lot_id, quantity=qty)
            for lot_id, qty in self._pending.get(line_id, {}).items()
        ]

    def suggest(self, sale_line: SaleLine) -> List[Allocation]:
        """
        Greedy plan in candidate order; records nothing.

        The plan may fall short of the requested quantity when stock is
        insufficient; `validate` on such a plan reports the mismatch.
        """

        remaining = sale_line.requested_quantity
        plan: List[Allocation] = []
        for lot in self.list_candidates(sale_line):
            if remaining == 0:
                break
            take = min(remaining, self.preview_available(lot, sale_line.line_id))
            if take > 0:
                plan.append(Allocation(line_id=sale_line.line_id, lot_id=lot.lot_id, quantity=take))
                remaining -= take
        return plan

    def validate(self, sale_line: SaleLine, allocations: Optional[Sequence[Allocation]] = None) -> List[Allocation]:
        """
        Check that allocations for the line add up to exactly the requested quantity.

        Uses the line's pending allocations unless `allocations` is given.

        Raises:
            AllocationMismatch: If the selected total differs from the request
        """

        selected = list(allocations) if allocations is not None else self.pending(sale_line.line_id)
        selected = [a for a in selected if a.line_id == sale_line.line_id]
        total = sum(a.quantity for a in selected)
        if total != sale_line.requested_quantity:
            raise AllocationMismatch(
                line_id=sale_line.line_id, requested=sale_line.requested_quantity, selected=total
            )
        return selected

    def check_stock(self, allocations: Sequence[Allocation]) -> Dict[str, InventoryLot]:
        """
        Re-read every referenced lot and confirm it covers its total allocation.

        Returns the freshly read lots by id.

        Raises:
            InsufficientStock: If any lot is gone or has too few units available
        """

        per_lot: "OrderedDict[str, int]" = OrderedDict()
        for allocation in allocations:
            per_lot[allocation.lot_id] = per_lot.get(allocation.lot_id, 0) + allocation.quantity

        current: Dict[str, InventoryLot] = {}
        for lot_id, requested in per_lot.items():
            lot = self._lots.get(lot_id)
            available = lot.available_quantity if lot is not None else 0
            if lot is None or requested > available:
                raise InsufficientStock(lot_id=lot_id, requested=requested, available=available)
            current[lot_id] = lot
        return current

    def commit(self, allocations: Sequence[Allocation]) -> CommitResult:
        """
        Apply allocations to the lots.

        Every allocation is validated against freshly read lot state before
        anything is written; one failure aborts the whole commit with no
        changes. Lots that reach zero are removed.

        Args:
            allocations: Allocations to apply (typically every line of one sale)

        Returns:
            CommitResult with per-allocation management numbers and any
            non-fatal management-number shortages

        Raises:
            ValueError: If allocations is empty
            InsufficientStock: If any lot no longer covers its allocations

        Example:
            allocator.allocate(line, "LOT-1", 2)
            result = allocator.commit(allocator.validate(line))
            for item in result.committed:
                print(item.allocation.lot_id, item.management_numbers)
        """

        if not allocations:
            raise ValueError("allocations cannot be empty")

        current = self.check_stock(allocations)
        original = dict(current)

        committed: List[CommittedAllocation] = []
        warnings: List[ManagementNumbersExhausted] = []
        for allocation in allocations:
            lot = current[allocation.lot_id]
            updated, numbers, shortfall = lot.consume(allocation.quantity)
            current[allocation.lot_id] = updated
            committed.append(
                CommittedAllocation(allocation=allocation, lot=original[allocation.lot_id], management_numbers=numbers)
            )
            if shortfall:
                warning = ManagementNumbersExhausted(
                    lot_id=allocation.lot_id, requested=allocation.quantity, assigned=len(numbers)
                )
                warnings.append(warning)
                logger.warning(
                    "Lot ran out of management numbers",
                    extra={
                        "lot_id": allocation.lot_id,
                        "requested": allocation.quantity,
                        "assigned": len(numbers),
                    },
                )

        updated_lots = [lot for lot in current.values() if not lot.is_depleted]
        removed = [lot.lot_id for lot in current.values() if lot.is_depleted]
        self._lots.apply_changes(updated_lots, removed)

        for line_id in {a.line_id for a in allocations}:
            self.release(line_id)

        logger.info(
            "Committed allocations",
            extra={
                "allocation_count": len(allocations),
                "lots_updated": len(updated_lots),
                "lots_removed": len(removed),
            },
        )

        return CommitResult(
            committed=committed,
            updated_lots=updated_lots,
            removed_lot_ids=removed,
            warnings=warnings,
        )


__all__ = [
    "CommitResult",
    "CommittedAllocation",
    "InventoryAllocator",
]
