"""
Serial traceability service.
Assigns globally unique serial numbers to units built by a work order and
answers forward (work order -> serials) and reverse (serial -> work order)
lookups.
"""
import logging
import re
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from mrp.exceptions import (
    MrpError, ValidationError, NotFoundError, ConflictError,
    DuplicateSerialError, InvalidTransitionError, TransactionFailedError
)
from mrp.models import UnitSerial, SerialStatus, WorkOrder

logger = logging.getLogger(__name__)

SERIAL_MAX_LENGTH = 100
NOTES_MAX_LENGTH = 10000
PREFIX_MAX_LENGTH = 3
FALLBACK_PREFIX = 'SN'
TIMESTAMP_FORMAT = '%y%m%d%H%M%S'  # YYMMDDHHMMSS
MAX_SUFFIX = 99

_SEGMENT_RE = re.compile(r'[A-Za-z0-9]+')

SERIAL_TRANSITIONS = {
    SerialStatus.BUILDING: frozenset({SerialStatus.TESTING, SerialStatus.FAILED, SerialStatus.SCRAPPED}),
    SerialStatus.TESTING: frozenset({SerialStatus.COMPLETE}),
    SerialStatus.COMPLETE: frozenset(),
    SerialStatus.FAILED: frozenset(),
    SerialStatus.SCRAPPED: frozenset(),
}


def serial_prefix(assembly_ipn: str) -> str:
    """First alphanumeric segment of the IPN, upper-cased, at most 3 characters."""
    match = _SEGMENT_RE.search(assembly_ipn or '')
    if not match:
        return FALLBACK_PREFIX
    return match.group(0)[:PREFIX_MAX_LENGTH].upper()


def generate_serial_number(assembly_ipn: str, now: Optional[datetime] = None) -> str:
    """
    Build <PREFIX><YYMMDDHHMMSS> for an assembly.

    Examples:
        PCA-MAIN-V1.0 -> PCA240115103000
        X-TEST        -> X240115103000
    """
    now = now or datetime.now()
    return f'{serial_prefix(assembly_ipn)}{now.strftime(TIMESTAMP_FORMAT)}'


def is_valid_serial_transition(current, requested) -> bool:
    try:
        current = SerialStatus(current) if not isinstance(current, SerialStatus) else current
        requested = SerialStatus(requested) if not isinstance(requested, SerialStatus) else requested
    except ValueError:
        return False
    return requested in SERIAL_TRANSITIONS[current]


def _serial_exists(session, serial_number: str) -> bool:
    return session.query(UnitSerial.id).filter(UnitSerial.serial_number == serial_number).first() is not None


def _unique_generated_serial(session, assembly_ipn: str) -> str:
    """Generated serial, suffixed -02, -03, ... when the same second is already taken."""
    base = generate_serial_number(assembly_ipn)
    if not _serial_exists(session, base):
        return base
    for n in range(2, MAX_SUFFIX + 1):
        candidate = f'{base}-{n:02d}'
        if not _serial_exists(session, candidate):
            return candidate
    raise ConflictError(f'Could not generate a unique serial for {assembly_ipn}; retry in a second')


def _get_work_order(session, wo_id: str) -> WorkOrder:
    work_order = session.query(WorkOrder).filter(WorkOrder.id == wo_id).first()
    if not work_order:
        raise NotFoundError(f'Work order {wo_id} not found')
    return work_order


def list_serials(session, wo_id: str) -> List[UnitSerial]:
    """Forward trace: all serials of a work order."""
    _get_work_order(session, wo_id)
    return (
        session.query(UnitSerial)
        .filter(UnitSerial.wo_id == wo_id)
        .order_by(UnitSerial.id)
        .all()
    )


def find_serial(session, serial_number: str) -> Dict[str, Any]:
    """Reverse trace: the serial with its owning work order and assembly."""
    row = (
        session.query(UnitSerial, WorkOrder)
        .join(WorkOrder, UnitSerial.wo_id == WorkOrder.id)
        .filter(UnitSerial.serial_number == serial_number)
        .first()
    )
    if not row:
        raise NotFoundError(f'Serial {serial_number} not found')
    serial, work_order = row
    return {'serial': serial, 'work_order': work_order}


def assign_serial(session, wo_id: str, payload: Optional[Dict[str, Any]] = None) -> UnitSerial:
    """
    Register a unit against a work order.

    An explicit serial_number is taken verbatim; otherwise one is generated
    from the assembly IPN. Status defaults to building.

    Raises:
        NotFoundError: unknown work order.
        ConflictError: the order is completed or cancelled.
        ValidationError: bad status or oversized fields.
        DuplicateSerialError: the serial exists on any work order.
    """
    payload = payload or {}
    if not isinstance(payload, dict):
        raise ValidationError('Invalid body')

    errors = {}
    serial_number = payload.get('serial_number')
    if serial_number is not None:
        if not isinstance(serial_number, str):
            errors['serial_number'] = 'must be a string'
        elif serial_number != serial_number.strip():
            errors['serial_number'] = 'must not have leading or trailing whitespace'
        elif len(serial_number) > SERIAL_MAX_LENGTH:
            errors['serial_number'] = f'must be at most {SERIAL_MAX_LENGTH} characters'

    status = SerialStatus.BUILDING
    if payload.get('status'):
        try:
            status = SerialStatus(payload['status'])
        except ValueError:
            valid = ', '.join(s.value for s in SerialStatus)
            errors['status'] = f'must be one of: {valid}'

    notes = payload.get('notes')
    if notes is not None and (not isinstance(notes, str) or len(notes) > NOTES_MAX_LENGTH):
        errors['notes'] = f'must be a string of at most {NOTES_MAX_LENGTH} characters'

    if errors:
        raise ValidationError(
            'Validation failed: ' + '; '.join(f'{k}: {v}' for k, v in errors.items()), errors
        )

    try:
        work_order = _get_work_order(session, wo_id)
        if work_order.is_terminal:
            raise ConflictError(
                f'Cannot add serials to {work_order.status.value} work order {wo_id}',
                {'wo_status': work_order.status.value}
            )

        if serial_number:
            if _serial_exists(session, serial_number):
                raise DuplicateSerialError(serial_number)
        else:
            serial_number = _unique_generated_serial(session, work_order.assembly_ipn)

        serial = UnitSerial(
            wo_id=wo_id,
            serial_number=serial_number,
            status=status,
            notes=notes or None,
        )
        session.add(serial)
        session.commit()
        logger.info(f"[SERIAL] {serial_number} assigned to {wo_id}")
        return serial

    except MrpError:
        session.rollback()
        raise
    except IntegrityError:
        # Concurrent insert of the same serial lost the race on the unique index
        session.rollback()
        raise DuplicateSerialError(serial_number)
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"[SERIAL] Assign to {wo_id} failed: {e}")
        raise TransactionFailedError(f'Could not assign serial to work order {wo_id}')


def update_serial_status(session, serial_number: str, payload: Dict[str, Any]) -> UnitSerial:
    """
    Move a serial through building -> testing -> complete, or building ->
    failed / scrapped. Notes may be updated with or without a status change.
    """
    if not isinstance(payload, dict):
        raise ValidationError('Invalid body')

    requested = None
    if payload.get('status'):
        try:
            requested = SerialStatus(payload['status'])
        except ValueError:
            valid = ', '.join(s.value for s in SerialStatus)
            raise ValidationError(f'status must be one of: {valid}', {'status': f'must be one of: {valid}'})

    notes = payload.get('notes')
    if notes is not None and (not isinstance(notes, str) or len(notes) > NOTES_MAX_LENGTH):
        raise ValidationError('Invalid notes', {'notes': f'must be a string of at most {NOTES_MAX_LENGTH} characters'})

    try:
        serial = (
            session.query(UnitSerial)
            .filter(UnitSerial.serial_number == serial_number)
            .with_for_update()
            .first()
        )
        if not serial:
            raise NotFoundError(f'Serial {serial_number} not found')

        if requested is not None and requested != serial.status:
            if not is_valid_serial_transition(serial.status, requested):
                raise InvalidTransitionError('serial', serial.status.value, requested.value)
            serial.status = requested
        if notes is not None:
            serial.notes = notes

        session.commit()
        logger.info(f"[SERIAL] {serial_number} -> {serial.status.value}")
        return serial

    except MrpError:
        session.rollback()
        raise
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"[SERIAL] Update of {serial_number} failed: {e}")
        raise TransactionFailedError(f'Could not update serial {serial_number}')
