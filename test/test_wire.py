from datetime import datetime, timezone

import pytest

from shopsync.domain.models import Item, MovementKind, SaleLine, StockMovement, SyncStatus, parse_timestamp
from shopsync.domain.wire import (
    item_to_remote,
    movement_to_remote,
    remote_item_from_row,
    sale_line_to_remote,
    to_payload,
)

NOW = datetime(2024, 5, 1, 10, 0, 0, 250000, tzinfo=timezone.utc)


def _item(**overrides) -> Item:
    fields = dict(
        id=3,
        client_ref="c-3",
        name="Widget",
        sku="W-1",
        barcode=None,
        quantity=4,
        price=2.5,
        cost_price=1.25,
        supplier="ACME",
        category=None,
        last_updated=NOW,
        sync_status=SyncStatus.PENDING,
        remote_id="r3",
    )
    fields.update(overrides)
    return Item(**fields)


def test_item_payload_uses_remote_column_names_and_never_sends_identity():
    payload = to_payload(item_to_remote(_item()))

    assert "id" not in payload
    assert "remote_id" not in payload
    assert payload["cost_price"] == 1.25
    assert payload["client_ref"] == "c-3"
    assert payload["last_updated"] == "2024-05-01T10:00:00.250000+00:00"


def test_movement_payload_carries_signed_quantity_and_item_reference():
    movement = StockMovement(
        id=9,
        client_ref="m-9",
        item_id=3,
        quantity=-2,
        kind=MovementKind.SALE,
        timestamp=NOW,
        notes="Sale #1",
        sync_status=SyncStatus.PENDING,
    )

    payload = to_payload(movement_to_remote(movement, None, "c-3"))

    assert payload["type"] == "sale"
    assert payload["quantity"] == -2
    assert payload["item_id"] is None
    assert payload["item_client_ref"] == "c-3"


def test_sale_line_is_keyed_by_remote_ids():
    line = SaleLine(id=1, sale_id=5, item_id=3, quantity=2, sale_price=2.5)
    payload = to_payload(sale_line_to_remote(line, "rs-5", "r3"))
    assert payload == {"sale_id": "rs-5", "item_id": "r3", "quantity": 2, "sale_price": 2.5}


def test_remote_row_parsing_normalizes_values():
    remote = remote_item_from_row(
        {
            "id": 17,
            "client_ref": None,
            "name": "Imported",
            "sku": "IMP-1",
            "barcode": "",
            "quantity": None,
            "supplier": None,
            "price": "3.5",
            "cost_price": None,
            "category": "Tools",
            "last_updated": "2024-05-01T10:00:00Z",
        }
    )

    assert remote.id == "17"
    assert remote.client_ref == ""
    assert remote.barcode is None
    assert remote.quantity == 0
    assert remote.supplier == ""
    assert remote.price == 3.5
    assert parse_timestamp(remote.last_updated) == datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)


def test_remote_row_without_id_or_required_columns_is_rejected():
    with pytest.raises(ValueError):
        remote_item_from_row({"id": None, "name": "X", "sku": "X"})
    with pytest.raises(KeyError):
        remote_item_from_row({"id": "r1", "name": "No sku"})


def test_naive_timestamps_are_read_as_utc():
    assert parse_timestamp("2024-05-01T10:00:00") == datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)
