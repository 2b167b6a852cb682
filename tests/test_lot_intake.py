"""
Tests for `services/lot_intake_service.py`.
"""

from __future__ import annotations

import pytest

from domain.counterpart import Counterpart
from domain.product import ProductDescriptor, ProductType
from domain.rank import ConditionRank
from domain.sync import SyncStatus
from services.lot_intake_service import LotIntake

from conftest import SELLER, T0


def _intake(**overrides) -> LotIntake:
    fields = dict(
        descriptor=ProductDescriptor(product_type=ProductType.CONSOLE, console="ps5", manufacturer="sony"),
        quantity=2,
        acquisition_unit_price=30000,
        rank=ConditionRank.A,
        management_numbers=["M-001", "M-002"],
        counterpart=SELLER,
        performer="sato",
        registered_at=T0,
        lot_id="LOT-NEW",
    )
    fields.update(overrides)
    return LotIntake(**fields)


def test_register_lot_records_purchase_and_labels(engine) -> None:
    result = engine.intake.register_lot(_intake())

    assert result.lot.descriptor.console_label == "PlayStation 5"
    assert result.lot.descriptor.manufacturer_label == "SONY"
    assert engine.lots.get("LOT-NEW").total_quantity == 2
    assert result.purchase.event_id == "purchase-LOT-NEW"
    assert result.purchase.performer == "sato"
    assert result.missing_fields == []
    assert result.sync.status == SyncStatus.SKIPPED


def test_register_lot_links_remote_record(synced_engine, fake_session) -> None:
    fake_session.add(200, {"data_id": 4242})

    result = synced_engine.intake.register_lot(_intake())

    assert result.lot.external_id == "4242"
    assert synced_engine.lots.get("LOT-NEW").external_id == "4242"


def test_failed_remote_create_leaves_lot_unlinked(synced_engine, fake_session) -> None:
    fake_session.add(422, {"message": "invalid"})

    result = synced_engine.intake.register_lot(_intake())

    assert result.sync.status == SyncStatus.ERROR
    assert synced_engine.lots.get("LOT-NEW").external_id is None


def test_compliance_gaps_do_not_block_intake(engine) -> None:
    result = engine.intake.register_lot(_intake(counterpart=Counterpart(name="匿名", address="東京都")))

    assert engine.lots.get("LOT-NEW") is not None
    assert result.missing_fields == ["counterpart_occupation", "counterpart_age"]


@pytest.mark.parametrize(
    "overrides",
    [
        {"quantity": 0},
        {"management_numbers": ["M-1", "M-2", "M-3"]},
        {"management_numbers": ["M-1", "M-1"]},
        {"acquisition_unit_price": -1},
    ],
)
def test_invalid_intake_is_rejected(engine, overrides) -> None:
    with pytest.raises(ValueError):
        engine.intake.register_lot(_intake(**overrides))

    assert engine.lots.get("LOT-NEW") is None


def test_duplicate_lot_id_is_rejected(engine) -> None:
    engine.intake.register_lot(_intake())

    with pytest.raises(ValueError):
        engine.intake.register_lot(_intake())
