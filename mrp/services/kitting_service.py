"""
Kitting (allocation) service.
Reserves a work order's BOM requirement against the inventory ledger in one
transaction and reports the outcome per line. Shortage is a result, not an error.
"""
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List

from sqlalchemy.exc import SQLAlchemyError

from mrp.exceptions import MrpError, NotFoundError, ConflictError, TransactionFailedError
from mrp.models import WorkOrder, Reservation
from mrp.services.bom_service import resolve_requirements
from mrp.services.inventory_service import lock_stock_items, reserve, available_qty

logger = logging.getLogger(__name__)

ZERO = Decimal('0')

LINE_KITTED = 'kitted'
LINE_PARTIAL = 'partial'
LINE_SHORTAGE = 'shortage'


def classify_line(required: Decimal, kitted: Decimal) -> str:
    """kitted when fully covered, partial when some is held, shortage when nothing is."""
    if kitted >= required:
        return LINE_KITTED
    if kitted > 0:
        return LINE_PARTIAL
    return LINE_SHORTAGE


def overall_status(lines: List[Dict[str, Any]]) -> str:
    """kitted if every line is kitted, otherwise the worst line (shortage > partial)."""
    statuses = {line['status'] for line in lines}
    if LINE_SHORTAGE in statuses:
        return LINE_SHORTAGE
    if LINE_PARTIAL in statuses:
        return LINE_PARTIAL
    return LINE_KITTED


def _lock_work_order(session, wo_id: str) -> WorkOrder:
    work_order = (
        session.query(WorkOrder)
        .filter(WorkOrder.id == wo_id)
        .with_for_update()
        .populate_existing()
        .first()
    )
    if not work_order:
        raise NotFoundError(f'Work order {wo_id} not found')
    return work_order


def kit_work_order(session, wo_id: str) -> Dict[str, Any]:
    """
    Reserve components for a work order and return the kit report.

    Each BOM line reserves min(outstanding, available), where outstanding is
    the requirement minus what this order already holds, so re-kitting after
    stock arrives only claims the remaining shortfall. Stock is claimed first
    come first served; there is no preemption of other orders' reservations.

    The work order status is not changed.

    Raises:
        NotFoundError: unknown work order.
        ConflictError: the order is completed or cancelled.
        TransactionFailedError: the store failed; nothing was reserved.
    """
    try:
        work_order = _lock_work_order(session, wo_id)
        if work_order.is_terminal:
            raise ConflictError(
                f'Work order {wo_id} is {work_order.status.value} and cannot be kitted',
                {'wo_status': work_order.status.value}
            )

        requirements = resolve_requirements(session, work_order.assembly_ipn, work_order.qty)
        # Parts never stocked stay absent; they kit as a full shortage
        items = lock_stock_items(session, [req.ipn for req in requirements], create_missing=False)
        held = {
            res.ipn: res
            for res in session.query(Reservation).filter(Reservation.work_order_id == work_order.id).all()
        }

        lines = []
        for req in requirements:
            item = items.get(req.ipn)
            reservation = held.get(req.ipn)
            previously_held = Decimal(str(reservation.qty)) if reservation else ZERO
            outstanding = max(req.required - previously_held, ZERO)

            reserved_now = reserve(item, outstanding) if item is not None else ZERO
            kitted = previously_held + reserved_now

            if reserved_now > 0:
                if reservation:
                    reservation.qty = kitted
                else:
                    session.add(Reservation(work_order_id=work_order.id, ipn=req.ipn, qty=reserved_now))

            lines.append({
                'ipn': req.ipn,
                'qty_per': req.qty_per,
                'required': req.required,
                'on_hand': Decimal(str(item.qty_on_hand)) if item is not None else ZERO,
                'reserved': Decimal(str(item.qty_reserved)) if item is not None else ZERO,
                'available': available_qty(item) if item is not None else ZERO,
                'previously_held': previously_held,
                'reserved_now': reserved_now,
                'kitted': kitted,
                'shortage': max(req.required - kitted, ZERO),
                'status': classify_line(req.required, kitted),
            })

        session.commit()

        report = {
            'wo_id': work_order.id,
            'assembly_ipn': work_order.assembly_ipn,
            'qty': work_order.qty,
            'status': overall_status(lines),
            'items': lines,
            'kitted_at': datetime.now(timezone.utc),
        }
        logger.info(
            f"[KIT] {work_order.id}: {report['status']} "
            f"({sum(1 for l in lines if l['status'] == LINE_KITTED)}/{len(lines)} lines kitted)"
        )
        return report

    except MrpError:
        session.rollback()
        raise
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"[KIT] Kitting {wo_id} failed: {e}")
        raise TransactionFailedError(f'Kitting failed for work order {wo_id}: {e}')
