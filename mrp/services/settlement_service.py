"""
Settlement engine.
Turns a work order's reservations into consumption (completion) or returns
them to the pool (cancellation). Neither function commits: both run inside
the caller's status-update transaction so the status change and the stock
movements succeed or fail together.
"""
import logging
from decimal import Decimal
from typing import Any, Dict

from mrp.models import WorkOrder, StockTransactionType
from mrp.services.inventory_service import lock_stock_items, consume, receive, release

logger = logging.getLogger(__name__)

ZERO = Decimal('0')


def produced_qty(work_order: WorkOrder) -> Decimal:
    """Finished units to credit: qty_good when reported, otherwise the ordered qty."""
    if work_order.qty_good is not None:
        return Decimal(work_order.qty_good)
    return Decimal(work_order.qty)


def settle_completion(session, work_order: WorkOrder) -> Dict[str, Any]:
    """
    Consume this order's reservations and receive the finished assemblies.

    For each reservation row: consume min(held, item reserved) from the
    component (on hand and reserved both drop, ledgered as `issue`), then drop
    the row. Finally credit the assembly's on hand with the produced quantity
    (ledgered as `receive`). Other orders' reservations are not touched.
    """
    reservations = list(work_order.reservations)
    items = lock_stock_items(
        session, [res.ipn for res in reservations] + [work_order.assembly_ipn]
    )

    consumed = []
    for res in reservations:
        item = items[res.ipn]
        amount = min(Decimal(str(res.qty)), Decimal(str(item.qty_reserved)))
        consume(
            session, item, amount,
            reference=work_order.id,
            notes=f'Consumed by work order {work_order.id}',
        )
        consumed.append({'ipn': res.ipn, 'qty': amount})
    work_order.reservations.clear()

    produced = produced_qty(work_order)
    if produced > 0:
        receive(
            session, items[work_order.assembly_ipn], produced,
            reference=work_order.id,
            notes=f'Finished goods from work order {work_order.id}',
            tx_type=StockTransactionType.RECEIVE,
        )

    touched = sorted({line['ipn'] for line in consumed} | {work_order.assembly_ipn})
    logger.info(
        f"[SETTLE] {work_order.id} completed: consumed {len(consumed)} components, "
        f"produced {produced} x {work_order.assembly_ipn}"
    )
    return {'consumed': consumed, 'produced': produced, 'touched_ipns': touched}


def settle_cancellation(session, work_order: WorkOrder) -> Dict[str, Any]:
    """
    Release this order's reservations back to the pool.

    On hand is unchanged and no inventory transaction is recorded, since no
    stock physically moved.
    """
    reservations = list(work_order.reservations)
    items = lock_stock_items(session, [res.ipn for res in reservations])

    released = []
    for res in reservations:
        amount = release(items[res.ipn], Decimal(str(res.qty)))
        released.append({'ipn': res.ipn, 'qty': amount})
    work_order.reservations.clear()

    logger.info(f"[SETTLE] {work_order.id} released {len(released)} reservations")
    return {'released': released, 'touched_ipns': sorted(line['ipn'] for line in released)}
