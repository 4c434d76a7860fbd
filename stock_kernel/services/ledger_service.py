"""
LedgerService -- the only writer of item quantities and ledger entries.

Responsibility:
    Validates every mutation, updates the item and appends the matching
    StockTransaction inside the caller's session.

Architecture position:
    Kernel > Services.  Runs inside a StorageGateway write unit; the
    gateway commits or rolls back.

Invariants enforced:
    - quantity == initial quantity + signed sum of transactions.  Every
      quantity change is paired with exactly one transaction in the same
      unit of work; a zero-delta update writes nothing.
    - Validation and business rules are checked before any mutation.
    - Sale rows snapshot the item's cost price into unit_cost.

Failure modes:
    - ValidationError / InvalidQuantityError: malformed input.
    - ItemNotFoundError: unknown item id.
    - DuplicateNameError: name already used (from the unique constraint).
    - InsufficientStockError: sale larger than the stock on hand.

Usage:
    def unit(session):
        return LedgerService(session, clock).record_sale(item_id, 2)

    mutation = gateway.run_in_transaction("record_sale", unit)
"""

from decimal import Decimal

from sqlalchemy.exc import IntegrityError

from stock_kernel.db.types import coerce_money, round_money
from stock_kernel.domain.dtos import ItemSnapshot, StockMutation, TransactionRecord
from stock_kernel.exceptions import (
    DuplicateNameError,
    InsufficientStockError,
    InvalidQuantityError,
    ItemNotFoundError,
    ValidationError,
)
from stock_kernel.logging_config import get_logger
from stock_kernel.models import InventoryItem, StockTransaction, TransactionKind
from stock_kernel.services.base import BaseService

logger = get_logger("services.ledger")

INITIAL_STOCK_NOTE = "Initial stock"
SALE_NOTE = "Sale transaction"


def _is_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _require_count(field: str, value: object) -> int:
    if not _is_int(value) or value < 0:
        raise ValidationError(field, value, "must be a non-negative integer")
    return value


def _require_money(field: str, value: object) -> Decimal:
    amount = coerce_money(value)
    if amount is None:
        raise ValidationError(field, value, "must be a finite number")
    if amount < 0:
        raise ValidationError(field, value, "cannot be negative")
    return round_money(amount)


class LedgerService(BaseService[InventoryItem]):
    """
    Item and ledger mutations.

    Contract:
        Each public method performs at most one item change and appends at
        most one transaction, then flushes.  Results are StockMutation
        snapshots taken after the flush.

    Non-goals:
        - Does NOT commit.
        - Does NOT emit low-stock signals (the facade does, after commit).
    """

    def _get_item(self, item_id: int) -> InventoryItem:
        item = self.session.get(InventoryItem, item_id) if _is_int(item_id) else None
        if item is None:
            raise ItemNotFoundError(item_id)
        return item

    def _append(self, item: InventoryItem, kind: TransactionKind, quantity: int, **fields) -> StockTransaction:
        txn = StockTransaction(
            item_id=item.id,
            kind=kind.value,
            quantity=quantity,
            created_at=self.clock.now(),
            **fields,
        )
        self.session.add(txn)
        return txn

    def _result(self, item: InventoryItem, txn: StockTransaction | None) -> StockMutation:
        self.session.flush()
        return StockMutation(
            item=ItemSnapshot.from_model(item),
            transaction=TransactionRecord.from_model(txn, item.name) if txn else None,
        )

    def add_item(
        self,
        name: str,
        cost_price: object,
        selling_price: object,
        initial_quantity: int = 0,
        min_stock_level: int = 0,
    ) -> StockMutation:
        """
        Create an item with total_sold = 0.

        A positive initial quantity is recorded as one 'in' transaction
        noted "Initial stock".
        """
        if not isinstance(name, str) or not name.strip():
            raise ValidationError("name", name, "must be a non-empty string")
        name = name.strip()
        cost = _require_money("cost_price", cost_price)
        price = _require_money("selling_price", selling_price)
        quantity = _require_count("initial_quantity", initial_quantity)
        minimum = _require_count("min_stock_level", min_stock_level)

        now = self.clock.now()
        item = InventoryItem(
            name=name,
            cost_price=cost,
            selling_price=price,
            quantity=quantity,
            min_stock_level=minimum,
            total_sold=0,
            created_at=now,
            updated_at=now,
        )
        self.session.add(item)
        try:
            self.session.flush()
        except IntegrityError as exc:
            if "inventory_items.name" in str(exc.orig):
                raise DuplicateNameError(name) from exc
            raise

        txn = None
        if quantity > 0:
            txn = self._append(item, TransactionKind.IN, quantity, note=INITIAL_STOCK_NOTE)

        result = self._result(item, txn)
        logger.info(
            "stock_item_added",
            extra={
                "item_id": item.id,
                "initial_quantity": quantity,
                "min_stock_level": minimum,
            },
        )
        return result

    def update_stock(
        self,
        item_id: int,
        new_quantity: int,
        note: str | None = None,
    ) -> StockMutation:
        """
        Set an item's quantity, recording the difference as in/out.

        Setting the current quantity again is a no-op: nothing is written
        and the returned transaction is None.
        """
        if not _is_int(new_quantity) or new_quantity < 0:
            raise InvalidQuantityError(new_quantity)
        item = self._get_item(item_id)

        delta = new_quantity - item.quantity
        if delta == 0:
            logger.debug("stock_update_noop", extra={"item_id": item.id})
            return self._result(item, None)

        kind = TransactionKind.IN if delta > 0 else TransactionKind.OUT
        item.quantity = new_quantity
        item.updated_at = self.clock.now()
        txn = self._append(item, kind, abs(delta), note=note)

        result = self._result(item, txn)
        logger.info(
            "stock_updated",
            extra={
                "item_id": item.id,
                "kind": kind.value,
                "delta": delta,
                "new_quantity": new_quantity,
            },
        )
        return result

    def record_sale(
        self,
        item_id: int,
        quantity_sold: int,
        unit_price: object = None,
        note: str | None = None,
    ) -> StockMutation:
        """
        Sell stock at ``unit_price`` (default: the item's selling price).

        An explicit unit price of 0 is honoured.  total_amount is
        unit_price * quantity_sold rounded to the stored scale.
        """
        if not _is_int(quantity_sold) or quantity_sold <= 0:
            raise ValidationError("quantity_sold", quantity_sold, "must be a positive integer")
        price = None if unit_price is None else _require_money("unit_price", unit_price)

        item = self._get_item(item_id)
        if quantity_sold > item.quantity:
            raise InsufficientStockError(item.id, quantity_sold, item.quantity)

        if price is None:
            price = Decimal(item.selling_price)
        total = round_money(price * quantity_sold)

        item.quantity -= quantity_sold
        item.total_sold += quantity_sold
        item.updated_at = self.clock.now()
        txn = self._append(
            item,
            TransactionKind.SOLD,
            quantity_sold,
            unit_price=price,
            total_amount=total,
            unit_cost=Decimal(item.cost_price),
            note=note or SALE_NOTE,
        )

        result = self._result(item, txn)
        logger.info(
            "stock_sale_recorded",
            extra={
                "item_id": item.id,
                "quantity_sold": quantity_sold,
                "unit_price": price,
                "total_amount": total,
                "remaining": item.quantity,
            },
        )
        return result

    def delete_item(self, item_id: int) -> ItemSnapshot:
        """Delete an item; the database cascades its transactions."""
        item = self._get_item(item_id)
        snapshot = ItemSnapshot.from_model(item)
        self.session.delete(item)
        self.session.flush()
        logger.info("stock_item_deleted", extra={"item_id": snapshot.id})
        return snapshot
