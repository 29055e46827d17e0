from datetime import datetime, timedelta, timezone

import pytest

from bakeops.errors import InvalidInputError, NotFoundError
from bakeops.services import inventory

NOW = datetime.now(timezone.utc)


@pytest.fixture
def lots(db, seeded):
    older = inventory.add_lot(db, "CUP-VAN", 10, produced_at=NOW - timedelta(days=3),
                              expires_at=NOW + timedelta(days=1), lot_number="L1")
    newer = inventory.add_lot(db, "CUP-VAN", 20, produced_at=NOW - timedelta(days=2),
                              expires_at=NOW + timedelta(days=5), lot_number="L2")
    expired = inventory.add_lot(db, "CUP-VAN", 50, produced_at=NOW - timedelta(days=5),
                                expires_at=NOW - timedelta(days=1), lot_number="L0")
    return older, newer, expired


def test_stock_level_ignores_expired_lots(db, lots):
    level = inventory.stock_level(db, "CUP-VAN")
    assert level.quantity == 30
    assert level.lot_count == 2
    assert [l.lot_number for l in level.lots] == ["L1", "L2"]
    assert level.oldest_lot_produced_at == lots[0].produced_at.replace(tzinfo=timezone.utc)
    assert level.is_low_stock is False


def test_stock_as_of_a_later_time(db, lots):
    level = inventory.stock_level(db, "CUP-VAN", as_of=NOW + timedelta(days=2))
    assert level.quantity == 20
    assert level.is_low_stock is True


def test_consume_draws_oldest_first(db, lots):
    out = inventory.consume_fifo(db, "CUP-VAN", 15, actor="sam", reason="wedding order")
    assert [(d.lot_number, d.quantity, d.remaining) for d in out.draws] == [("L1", 10, 0), ("L2", 5, 15)]
    assert out.remaining_stock == 15

    level = inventory.stock_level(db, "CUP-VAN")
    assert level.quantity == 15
    # at or below minimum stock counts as low
    assert level.is_low_stock is True


def test_consume_is_all_or_nothing(db, lots):
    with pytest.raises(InvalidInputError):
        inventory.consume_fifo(db, "CUP-VAN", 31)
    assert inventory.stock_level(db, "CUP-VAN").quantity == 30


def test_add_lot_validation(db, seeded):
    with pytest.raises(InvalidInputError):
        inventory.add_lot(db, "CUP-VAN", 0)
    with pytest.raises(InvalidInputError):
        inventory.add_lot(db, "CUP-VAN", 5, produced_at=NOW, expires_at=NOW - timedelta(hours=1))
    with pytest.raises(NotFoundError):
        inventory.add_lot(db, "NOPE", 5)


def test_unknown_sku(db, seeded):
    with pytest.raises(NotFoundError):
        inventory.stock_level(db, "NOPE")
    with pytest.raises(NotFoundError):
        inventory.consume_fifo(db, "NOPE", 1)
