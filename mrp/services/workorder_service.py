"""
Work order service: creation, status state machine and settlement hooks.
"""
import logging
import re
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from mrp.exceptions import (
    MrpError, ValidationError, NotFoundError, ConflictError,
    InvalidTransitionError, TransactionFailedError
)
from mrp.models import (
    WorkOrder, WorkOrderStatus, WorkOrderPriority, Reservation, StockItem
)
from mrp.services import settlement_service
from mrp.services.bom_service import DEFAULT_MAX_DEPTH, explode_requirements, resolve_requirements
from mrp.services.inventory_service import lock_stock_items, release

logger = logging.getLogger(__name__)

MAX_WORK_ORDER_QTY = 100000
ASSEMBLY_IPN_MAX_LENGTH = 100
NOTES_MAX_LENGTH = 10000
ID_MAX_LENGTH = 32
ID_DIGITS = 4

# Statuses a new order may start in
INITIAL_STATUSES = frozenset({WorkOrderStatus.DRAFT, WorkOrderStatus.OPEN})

VALID_TRANSITIONS = {
    WorkOrderStatus.DRAFT: frozenset({WorkOrderStatus.OPEN, WorkOrderStatus.CANCELLED}),
    WorkOrderStatus.OPEN: frozenset({
        WorkOrderStatus.IN_PROGRESS, WorkOrderStatus.ON_HOLD, WorkOrderStatus.CANCELLED
    }),
    WorkOrderStatus.IN_PROGRESS: frozenset({WorkOrderStatus.COMPLETED, WorkOrderStatus.ON_HOLD}),
    WorkOrderStatus.ON_HOLD: frozenset(),
    WorkOrderStatus.COMPLETED: frozenset(),
    WorkOrderStatus.CANCELLED: frozenset(),
}


def _as_status(value) -> Optional[WorkOrderStatus]:
    if isinstance(value, WorkOrderStatus):
        return value
    try:
        return WorkOrderStatus(value)
    except ValueError:
        return None


def is_valid_status_transition(current, requested) -> bool:
    """
    Pure check of a (from, to) status pair against the transition table.

    Accepts enum members or their string values. Unknown statuses and
    same-status pairs are not transitions.
    """
    current = _as_status(current)
    requested = _as_status(requested)
    if current is None or requested is None:
        return False
    return requested in VALID_TRANSITIONS[current]


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------

def _parse_enum(enum_cls, value, field, errors):
    try:
        return enum_cls(value)
    except ValueError:
        valid = ', '.join(m.value for m in enum_cls)
        errors[field] = f'must be one of: {valid}'
        return None


def _parse_int(value, field, errors, minimum, maximum=None):
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        errors[field] = 'must be an integer'
        return None
    if isinstance(value, float):
        if not value.is_integer():
            errors[field] = 'must be an integer'
            return None
        value = int(value)
    try:
        number = int(str(value).strip())
    except ValueError:
        errors[field] = 'must be an integer'
        return None
    if number < minimum or (maximum is not None and number > maximum):
        errors[field] = (
            f'must be between {minimum} and {maximum}' if maximum is not None
            else f'must be at least {minimum}'
        )
        return None
    return number


def _parse_text(value, field, errors, max_length, required=False):
    if value is None:
        if required:
            errors[field] = 'required'
        return None
    if not isinstance(value, str):
        errors[field] = 'must be a string'
        return None
    value = value.strip()
    if required and not value:
        errors[field] = 'required'
        return None
    if len(value) > max_length:
        errors[field] = f'must be at most {max_length} characters'
        return None
    return value


def _parse_due_date(value, errors):
    """Accept YYYY-MM-DD or a full ISO 8601 datetime; nothing else."""
    if value in (None, ''):
        return None
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            if len(text) == 10:
                return date.fromisoformat(text)
            return datetime.fromisoformat(text).date()
        except ValueError:
            pass
    errors['due_date'] = 'must be a date (YYYY-MM-DD) or an ISO 8601 datetime'
    return None


def _raise_if_errors(errors: Dict[str, str]) -> None:
    if errors:
        summary = '; '.join(f'{field}: {msg}' for field, msg in errors.items())
        raise ValidationError(f'Validation failed: {summary}', errors)


def _check_output_counts(qty, qty_good, qty_scrap) -> None:
    """Good plus scrapped units can never exceed the quantity ordered."""
    reported = (qty_good or 0) + (qty_scrap or 0)
    if reported > qty:
        raise ValidationError(
            f'qty_good + qty_scrap ({reported}) exceeds qty ({qty})',
            {'qty_good': f'qty_good + qty_scrap cannot exceed qty ({qty})'}
        )


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

def get_work_order(session, wo_id: str) -> WorkOrder:
    work_order = session.query(WorkOrder).filter(WorkOrder.id == wo_id).first()
    if not work_order:
        raise NotFoundError(f'Work order {wo_id} not found')
    return work_order


def list_work_orders(session, status: Optional[str] = None) -> List[WorkOrder]:
    query = session.query(WorkOrder)
    if status:
        status_enum = _as_status(status)
        if status_enum is None:
            raise ValidationError(f'Unknown status filter: {status}', {'status': 'invalid'})
        query = query.filter(WorkOrder.status == status_enum)
    return query.order_by(WorkOrder.created_at.desc(), WorkOrder.id.desc()).all()


def work_order_requirements(session, wo_id: str, explode: bool = False,
                            max_depth: int = DEFAULT_MAX_DEPTH) -> Dict[str, Any]:
    """
    Point-in-time BOM snapshot for a work order: requirement, stock and
    what this order holds per component. Nothing is reserved.

    explode=True walks sub-assemblies down to leaf parts instead of listing
    the direct BOM lines.
    """
    work_order = get_work_order(session, wo_id)
    if explode:
        requirements = explode_requirements(session, work_order.assembly_ipn, work_order.qty, max_depth)
    else:
        requirements = resolve_requirements(session, work_order.assembly_ipn, work_order.qty)
    ipns = [req.ipn for req in requirements]
    stock = {}
    if ipns:
        stock = {item.ipn: item for item in session.query(StockItem).filter(StockItem.ipn.in_(ipns)).all()}
    held = {res.ipn: Decimal(str(res.qty)) for res in work_order.reservations}

    lines = []
    for req in requirements:
        item = stock.get(req.ipn)
        on_hand = Decimal(str(item.qty_on_hand)) if item else Decimal('0')
        reserved = Decimal(str(item.qty_reserved)) if item else Decimal('0')
        available = item.available_qty if item else Decimal('0')
        order_held = held.get(req.ipn, Decimal('0'))
        lines.append({
            'ipn': req.ipn,
            'qty_per': req.qty_per,
            'required': req.required,
            'on_hand': on_hand,
            'reserved': reserved,
            'available': available,
            'held': order_held,
            'shortage': max(req.required - order_held - available, Decimal('0')),
        })

    return {
        'wo_id': work_order.id,
        'assembly_ipn': work_order.assembly_ipn,
        'qty': work_order.qty,
        'status': work_order.status.value,
        'explode': explode,
        'bom': lines,
    }


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def next_work_order_id(session, today: Optional[date] = None) -> str:
    """Next id in the WO-<year>-<NNNN> sequence."""
    year = (today or date.today()).year
    prefix = f'WO-{year}-'
    ids = [row[0] for row in session.query(WorkOrder.id).filter(WorkOrder.id.like(f'{prefix}%')).all()]
    highest = 0
    for wo_id in ids:
        suffix = wo_id[len(prefix):]
        if suffix.isdigit():
            highest = max(highest, int(suffix))
    return f'{prefix}{highest + 1:0{ID_DIGITS}d}'


def create_work_order(session, payload: Dict[str, Any]) -> WorkOrder:
    """
    Validate and insert a new work order.

    Defaults: qty 1, status open, priority normal. The id is generated unless
    the caller supplies one.
    """
    if not isinstance(payload, dict):
        raise ValidationError('Invalid body')

    errors = {}
    assembly_ipn = _parse_text(payload.get('assembly_ipn'), 'assembly_ipn', errors,
                               ASSEMBLY_IPN_MAX_LENGTH, required=True)
    qty = payload.get('qty')
    qty = 1 if qty is None else _parse_int(qty, 'qty', errors, 1, MAX_WORK_ORDER_QTY)
    qty_good = payload.get('qty_good')
    if qty_good is not None:
        qty_good = _parse_int(qty_good, 'qty_good', errors, 0)
    qty_scrap = payload.get('qty_scrap')
    if qty_scrap is not None:
        qty_scrap = _parse_int(qty_scrap, 'qty_scrap', errors, 0)

    status = WorkOrderStatus.OPEN
    if payload.get('status'):
        status = _parse_enum(WorkOrderStatus, payload['status'], 'status', errors)
        if status is not None and status not in INITIAL_STATUSES:
            errors['status'] = 'new work orders must start as draft or open'

    priority = WorkOrderPriority.NORMAL
    if payload.get('priority'):
        priority = _parse_enum(WorkOrderPriority, payload['priority'], 'priority', errors)

    notes = _parse_text(payload.get('notes'), 'notes', errors, NOTES_MAX_LENGTH)
    due_date = _parse_due_date(payload.get('due_date'), errors)

    wo_id = None
    if payload.get('id'):
        wo_id = _parse_text(payload.get('id'), 'id', errors, ID_MAX_LENGTH)
        if wo_id is not None and not re.match(r'^[A-Za-z0-9][A-Za-z0-9_-]*$', wo_id):
            errors['id'] = 'may contain only letters, digits, - and _'

    _raise_if_errors(errors)
    _check_output_counts(qty, qty_good, qty_scrap)

    try:
        if wo_id:
            if session.query(WorkOrder.id).filter(WorkOrder.id == wo_id).first():
                raise ConflictError(f'Work order {wo_id} already exists', {'id': wo_id})
        else:
            wo_id = next_work_order_id(session)

        work_order = WorkOrder(
            id=wo_id,
            assembly_ipn=assembly_ipn,
            qty=qty,
            qty_good=qty_good,
            qty_scrap=qty_scrap,
            status=status,
            priority=priority,
            notes=notes,
            due_date=due_date,
            created_at=datetime.now(timezone.utc),
        )
        session.add(work_order)
        session.commit()
        logger.info(f"[WO] Created {work_order.id} for {assembly_ipn} x {qty}")
        return work_order

    except MrpError:
        session.rollback()
        raise
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"[WO] Create failed: {e}")
        raise TransactionFailedError(f'Could not create work order: {e}')


def update_work_order(session, wo_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Apply a partial update, running settlement on a status change.

    A status equal to the current one is not a transition. Any other status
    must be allowed by VALID_TRANSITIONS. `completed` consumes this order's
    reservations and receives the assembly; `cancelled` releases them. The
    field changes, the status and the settlement are committed together or
    not at all.

    Returns a dict with the work order, the previous status and the
    settlement summary (None when no settlement ran).
    """
    if not isinstance(payload, dict):
        raise ValidationError('Invalid body')

    errors = {}
    changes = {}

    if 'assembly_ipn' in payload:
        changes['assembly_ipn'] = _parse_text(payload['assembly_ipn'], 'assembly_ipn', errors,
                                              ASSEMBLY_IPN_MAX_LENGTH, required=True)
    if 'qty' in payload:
        changes['qty'] = _parse_int(payload['qty'], 'qty', errors, 1, MAX_WORK_ORDER_QTY)
    for field in ('qty_good', 'qty_scrap'):
        if field in payload:
            changes[field] = (
                None if payload[field] is None else _parse_int(payload[field], field, errors, 0)
            )
    if payload.get('priority'):
        changes['priority'] = _parse_enum(WorkOrderPriority, payload['priority'], 'priority', errors)
    if 'notes' in payload:
        changes['notes'] = _parse_text(payload['notes'], 'notes', errors, NOTES_MAX_LENGTH)
    if 'due_date' in payload:
        changes['due_date'] = _parse_due_date(payload['due_date'], errors)

    requested_status = None
    if payload.get('status'):
        requested_status = _parse_enum(WorkOrderStatus, payload['status'], 'status', errors)

    _raise_if_errors(errors)

    try:
        work_order = (
            session.query(WorkOrder)
            .filter(WorkOrder.id == wo_id)
            .with_for_update()
            .populate_existing()
            .first()
        )
        if not work_order:
            raise NotFoundError(f'Work order {wo_id} not found')

        previous_status = work_order.status
        transition = requested_status is not None and requested_status != previous_status

        if transition and not is_valid_status_transition(previous_status, requested_status):
            raise InvalidTransitionError('work order', previous_status.value, requested_status.value)

        _check_locked_fields(work_order, changes)
        _check_output_counts(
            changes.get('qty', work_order.qty),
            changes.get('qty_good', work_order.qty_good),
            changes.get('qty_scrap', work_order.qty_scrap),
        )

        for field, value in changes.items():
            setattr(work_order, field, value)

        settlement = None
        if transition:
            now = datetime.now(timezone.utc)
            if requested_status == WorkOrderStatus.IN_PROGRESS and work_order.started_at is None:
                work_order.started_at = now
            elif requested_status == WorkOrderStatus.COMPLETED:
                settlement = settlement_service.settle_completion(session, work_order)
                work_order.completed_at = now
            elif requested_status == WorkOrderStatus.CANCELLED:
                settlement = settlement_service.settle_cancellation(session, work_order)
            work_order.status = requested_status

        session.commit()

        if transition:
            logger.info(f"[WO] {wo_id}: {previous_status.value} -> {requested_status.value}")
        return {
            'work_order': work_order,
            'previous_status': previous_status,
            'settlement': settlement,
        }

    except MrpError:
        session.rollback()
        raise
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"[WO] Update of {wo_id} failed and was rolled back: {e}")
        raise TransactionFailedError(f'Update of work order {wo_id} failed and was rolled back')


def _check_locked_fields(work_order: WorkOrder, changes: Dict[str, Any]) -> None:
    """Assembly and quantity are frozen once stock is held or the order is closed."""
    locked = [
        field for field in ('assembly_ipn', 'qty')
        if field in changes and changes[field] != getattr(work_order, field)
    ]
    if not locked:
        return
    if work_order.is_terminal:
        raise ConflictError(
            f'Cannot change {", ".join(locked)} of {work_order.status.value} work order {work_order.id}'
        )
    if work_order.reservations:
        raise ConflictError(
            f'Cannot change {", ".join(locked)} of work order {work_order.id} while it holds '
            f'reservations; cancel or complete it first'
        )


def delete_work_order(session, wo_id: str) -> Dict[str, Any]:
    """
    Delete a work order, releasing any stock it holds.

    Its serials are removed by the ON DELETE CASCADE on wo_serials.
    """
    try:
        work_order = (
            session.query(WorkOrder)
            .filter(WorkOrder.id == wo_id)
            .with_for_update()
            .first()
        )
        if not work_order:
            raise NotFoundError(f'Work order {wo_id} not found')

        reservations = session.query(Reservation).filter(Reservation.work_order_id == wo_id).all()
        items = lock_stock_items(session, [res.ipn for res in reservations])
        released = []
        for res in reservations:
            released.append({'ipn': res.ipn, 'qty': release(items[res.ipn], Decimal(str(res.qty)))})

        serial_count = len(work_order.serials)
        session.delete(work_order)
        session.commit()

        logger.info(f"[WO] Deleted {wo_id} ({serial_count} serials, {len(released)} reservations released)")
        return {'wo_id': wo_id, 'released': released, 'serials_deleted': serial_count}

    except MrpError:
        session.rollback()
        raise
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"[WO] Delete of {wo_id} failed: {e}")
        raise TransactionFailedError(f'Delete of work order {wo_id} failed and was rolled back')
