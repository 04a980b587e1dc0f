"""JSON shapes returned by the API."""
import enum
from datetime import date, datetime
from decimal import Decimal

from mrp.utils.number_format import to_number


def jsonable(value):
    """Recursively convert Decimals, dates and enums into JSON-friendly values."""
    if isinstance(value, Decimal):
        return to_number(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, dict):
        return {key: jsonable(val) for key, val in value.items()}
    if isinstance(value, (list, tuple)):
        return [jsonable(val) for val in value]
    return value


def serialize_work_order(wo):
    return jsonable({
        'id': wo.id,
        'assembly_ipn': wo.assembly_ipn,
        'qty': wo.qty,
        'qty_good': wo.qty_good,
        'qty_scrap': wo.qty_scrap,
        'status': wo.status,
        'priority': wo.priority,
        'notes': wo.notes or '',
        'due_date': wo.due_date,
        'created_at': wo.created_at,
        'started_at': wo.started_at,
        'completed_at': wo.completed_at,
        'reservations': [
            {'ipn': res.ipn, 'qty': res.qty} for res in wo.reservations
        ],
    })


def serialize_stock_item(item):
    return jsonable({
        'ipn': item.ipn,
        'qty_on_hand': item.qty_on_hand,
        'qty_reserved': item.qty_reserved,
        'qty_available': item.available_qty,
        'location': item.location or '',
        'reorder_point': item.reorder_point,
        'reorder_qty': item.reorder_qty,
        'description': item.description or '',
        'mpn': item.mpn or '',
        'low_stock': item.is_low_stock,
        'updated_at': item.updated_at,
    })


def serialize_transaction(tx):
    return jsonable({
        'id': tx.id,
        'ipn': tx.ipn,
        'type': tx.type,
        'qty': tx.qty,
        'reference': tx.reference or '',
        'notes': tx.notes or '',
        'created_at': tx.created_at,
    })


def serialize_serial(serial, work_order=None):
    data = {
        'id': serial.id,
        'wo_id': serial.wo_id,
        'serial_number': serial.serial_number,
        'status': serial.status,
        'notes': serial.notes or '',
        'created_at': serial.created_at,
    }
    if work_order is not None:
        data['assembly_ipn'] = work_order.assembly_ipn
        data['wo_status'] = work_order.status
    return jsonable(data)
