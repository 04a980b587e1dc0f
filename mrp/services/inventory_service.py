"""
Inventory ledger service.
Single owner of StockItem quantities: every change to on-hand or reserved goes
through the functions in this module so the 0 <= reserved <= on_hand invariant
is checked in one place.
"""
import logging
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from mrp.exceptions import (
    MrpError, ValidationError, NotFoundError, LedgerInvariantError, TransactionFailedError
)
from mrp.models import StockItem, StockTransaction, StockTransactionType
from mrp.utils.number_format import parse_quantity

logger = logging.getLogger(__name__)

ZERO = Decimal('0')
IPN_MAX_LENGTH = 100


def _dec(value) -> Decimal:
    return Decimal(str(value if value is not None else 0))


def _check_invariant(item: StockItem) -> None:
    """Raise LedgerInvariantError if the item left the 0 <= reserved <= on_hand band."""
    on_hand = _dec(item.qty_on_hand)
    reserved = _dec(item.qty_reserved)
    if on_hand < 0:
        raise LedgerInvariantError(item.ipn, f'on hand cannot go negative (would be {on_hand})')
    if reserved < 0:
        raise LedgerInvariantError(item.ipn, f'reserved cannot go negative (would be {reserved})')
    if reserved > on_hand:
        raise LedgerInvariantError(item.ipn, f'reserved {reserved} would exceed on hand {on_hand}')


def _validate_ipn(ipn) -> str:
    if not isinstance(ipn, str) or not ipn.strip():
        raise ValidationError('ipn is required', {'ipn': 'required'})
    ipn = ipn.strip()
    if len(ipn) > IPN_MAX_LENGTH:
        raise ValidationError(f'ipn must be at most {IPN_MAX_LENGTH} characters',
                              {'ipn': f'max {IPN_MAX_LENGTH} characters'})
    return ipn


# ---------------------------------------------------------------------------
# Reads and locking
# ---------------------------------------------------------------------------

def get_stock_item(session, ipn: str) -> StockItem:
    item = session.query(StockItem).filter(StockItem.ipn == ipn).first()
    if not item:
        raise NotFoundError(f'Inventory item {ipn} not found')
    return item


def get_or_create_stock(session, ipn: str, lock: bool = False) -> StockItem:
    """
    Return the StockItem for `ipn`, creating an empty row on first reference.

    With lock=True the row is read with SELECT ... FOR UPDATE (PostgreSQL) and
    refreshed from the database.
    """
    query = session.query(StockItem).filter(StockItem.ipn == ipn)
    if lock:
        query = query.with_for_update().populate_existing()
    item = query.first()
    if item is None:
        item = StockItem(
            ipn=ipn,
            qty_on_hand=ZERO,
            qty_reserved=ZERO,
            reorder_point=ZERO,
            reorder_qty=ZERO,
        )
        session.add(item)
        session.flush()
        logger.info(f"[LEDGER] Created inventory row for {ipn}")
    return item


def lock_stock_items(session, ipns: Iterable[str], create_missing: bool = True) -> Dict[str, StockItem]:
    """
    Lock inventory rows FOR UPDATE in sorted IPN order and return them by IPN.

    Sorted order keeps lock acquisition consistent between concurrent kit and
    settlement transactions. Missing rows are created unless create_missing
    is False, in which case they are simply absent from the result.
    """
    ordered = sorted(set(ipns))
    if not ordered:
        return {}

    rows = (
        session.query(StockItem)
        .filter(StockItem.ipn.in_(ordered))
        .order_by(StockItem.ipn)
        .with_for_update()
        .populate_existing()
        .all()
    )
    items = {row.ipn: row for row in rows}
    if not create_missing:
        return items
    for ipn in ordered:
        if ipn not in items:
            items[ipn] = get_or_create_stock(session, ipn)
    return items


def available_qty(item: StockItem) -> Decimal:
    """On hand minus reserved, floored at zero."""
    return item.available_qty


# ---------------------------------------------------------------------------
# Reservation counter (not ledgered)
# ---------------------------------------------------------------------------

def reserve(item: StockItem, qty: Decimal) -> Decimal:
    """
    Reserve up to `qty` of the item's available stock.

    Returns the amount actually reserved, which is min(qty, available).
    """
    qty = _dec(qty)
    amount = min(qty, available_qty(item))
    if amount <= 0:
        return ZERO
    item.qty_reserved = _dec(item.qty_reserved) + amount
    _check_invariant(item)
    return amount


def release(item: StockItem, qty: Decimal) -> Decimal:
    """Return up to `qty` of reserved stock to the pool. On hand is untouched."""
    qty = _dec(qty)
    amount = min(qty, _dec(item.qty_reserved))
    if amount <= 0:
        return ZERO
    item.qty_reserved = _dec(item.qty_reserved) - amount
    _check_invariant(item)
    return amount


# ---------------------------------------------------------------------------
# On-hand movements (always ledgered)
# ---------------------------------------------------------------------------

def record_transaction(session, ipn: str, tx_type: StockTransactionType, delta: Decimal,
                       reference: Optional[str] = None, notes: Optional[str] = None) -> StockTransaction:
    """Append one row to the inventory transaction history."""
    tx = StockTransaction(
        ipn=ipn,
        type=tx_type,
        qty=delta,
        reference=reference,
        notes=notes,
    )
    session.add(tx)
    return tx


def consume(session, item: StockItem, qty: Decimal, reference: Optional[str] = None,
            notes: Optional[str] = None) -> Decimal:
    """
    Turn reserved stock into real consumption.

    Both on-hand and reserved drop by `qty`; an `issue` transaction with a
    negative delta is recorded.
    """
    qty = _dec(qty)
    if qty <= 0:
        return ZERO
    if qty > _dec(item.qty_reserved):
        raise LedgerInvariantError(item.ipn, f'cannot consume {qty}, only {item.qty_reserved} reserved')
    item.qty_on_hand = _dec(item.qty_on_hand) - qty
    item.qty_reserved = _dec(item.qty_reserved) - qty
    _check_invariant(item)
    record_transaction(session, item.ipn, StockTransactionType.ISSUE, -qty, reference, notes)
    return qty


def receive(session, item: StockItem, qty: Decimal, reference: Optional[str] = None,
            notes: Optional[str] = None,
            tx_type: StockTransactionType = StockTransactionType.RECEIVE) -> Decimal:
    """Add stock to on hand (receive or return)."""
    qty = _dec(qty)
    item.qty_on_hand = _dec(item.qty_on_hand) + qty
    _check_invariant(item)
    record_transaction(session, item.ipn, tx_type, qty, reference, notes)
    return qty


def issue_unreserved(session, item: StockItem, qty: Decimal, reference: Optional[str] = None,
                     notes: Optional[str] = None,
                     tx_type: StockTransactionType = StockTransactionType.ISSUE) -> Decimal:
    """Remove stock that no work order holds (manual issue or scrap)."""
    qty = _dec(qty)
    available = available_qty(item)
    if qty > available:
        raise LedgerInvariantError(
            item.ipn, f'cannot {tx_type.value} {qty}, only {available} unreserved'
        )
    item.qty_on_hand = _dec(item.qty_on_hand) - qty
    _check_invariant(item)
    record_transaction(session, item.ipn, tx_type, -qty, reference, notes)
    return qty


def adjust(session, item: StockItem, new_on_hand: Decimal, reference: Optional[str] = None,
           notes: Optional[str] = None) -> Decimal:
    """
    Set on hand to an absolute count (cycle count correction).

    Returns the signed delta that was ledgered. Refused if the new count would
    drop below what is already reserved.
    """
    new_on_hand = _dec(new_on_hand)
    if new_on_hand < _dec(item.qty_reserved):
        raise LedgerInvariantError(
            item.ipn, f'cannot adjust on hand to {new_on_hand}, {item.qty_reserved} is reserved'
        )
    delta = new_on_hand - _dec(item.qty_on_hand)
    item.qty_on_hand = new_on_hand
    _check_invariant(item)
    record_transaction(session, item.ipn, StockTransactionType.ADJUST, delta, reference, notes)
    return delta


def transfer(session, item: StockItem, location: str, reference: Optional[str] = None,
             notes: Optional[str] = None) -> None:
    """Move the item to another location. Quantities are unchanged."""
    previous = item.location
    item.location = location
    record_transaction(session, item.ipn, StockTransactionType.TRANSFER, ZERO, reference,
                       notes or f'{previous or "-"} -> {location}')


# ---------------------------------------------------------------------------
# Manual transaction entry point
# ---------------------------------------------------------------------------

def post_transaction(session, payload: dict) -> StockItem:
    """
    Apply one manual inventory transaction and commit.

    Payload keys: ipn, type, qty, reference, notes, location (transfer only).
    receive/return add, issue/scrap remove unreserved stock, adjust sets the
    absolute on-hand count, transfer changes the location only.
    """
    if not isinstance(payload, dict):
        raise ValidationError('Invalid body')

    ipn = _validate_ipn(payload.get('ipn'))
    raw_type = payload.get('type')
    try:
        tx_type = StockTransactionType(raw_type)
    except ValueError:
        valid = ', '.join(t.value for t in StockTransactionType)
        raise ValidationError(f'type must be one of: {valid}', {'type': f'must be one of: {valid}'})

    reference = payload.get('reference') or None
    notes = payload.get('notes') or None

    if tx_type == StockTransactionType.TRANSFER:
        location = (payload.get('location') or '').strip()
        if not location:
            raise ValidationError('location is required for transfer', {'location': 'required'})
        qty = None
    else:
        qty = parse_quantity(payload.get('qty'), 'qty', allow_zero=tx_type == StockTransactionType.ADJUST)

    try:
        item = get_or_create_stock(session, ipn, lock=True)

        if tx_type in (StockTransactionType.RECEIVE, StockTransactionType.RETURN):
            receive(session, item, qty, reference, notes, tx_type=tx_type)
        elif tx_type in (StockTransactionType.ISSUE, StockTransactionType.SCRAP):
            issue_unreserved(session, item, qty, reference, notes, tx_type=tx_type)
        elif tx_type == StockTransactionType.ADJUST:
            adjust(session, item, qty, reference, notes)
        else:
            transfer(session, item, location, reference, notes)

        session.commit()
        logger.info(f"[LEDGER] {tx_type.value} {ipn} qty={qty} on_hand={item.qty_on_hand}")
        return item

    except MrpError:
        session.rollback()
        raise
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"[LEDGER] Transaction failed for {ipn}: {e}")
        raise TransactionFailedError(f'Inventory transaction failed: {e}')


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

def list_inventory(session, low_stock: bool = False) -> List[StockItem]:
    query = session.query(StockItem)
    if low_stock:
        query = query.filter(StockItem.reorder_point > 0, StockItem.qty_on_hand < StockItem.reorder_point)
    return query.order_by(StockItem.ipn).all()


def get_history(session, ipn: str, limit: int = 200) -> List[StockTransaction]:
    """Transactions for one IPN, newest first."""
    return (
        session.query(StockTransaction)
        .filter(StockTransaction.ipn == ipn)
        .order_by(StockTransaction.id.desc())
        .limit(limit)
        .all()
    )


def low_stock_items(session, ipns: Optional[Iterable[str]] = None) -> List[StockItem]:
    """
    Items whose on hand is strictly below a positive reorder point.

    Restrict to `ipns` when given (the rows touched by a transaction).
    """
    query = session.query(StockItem).filter(
        StockItem.reorder_point > 0,
        StockItem.qty_on_hand < StockItem.reorder_point,
    )
    if ipns is not None:
        ipns = sorted(set(ipns))
        if not ipns:
            return []
        query = query.filter(StockItem.ipn.in_(ipns))
    return query.order_by(StockItem.ipn).all()
