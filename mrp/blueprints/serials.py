"""Serials blueprint: reverse trace and status changes."""
from flask import Blueprint, jsonify, request
from mrp.database import get_session
from mrp.exceptions import ValidationError
from mrp.services import serial_service, audit_service
from mrp.services.notify_service import notify_change
from mrp.utils.serializers import serialize_serial

serials_bp = Blueprint('serials', __name__, url_prefix='/serials')


@serials_bp.route('/<serial_number>', methods=['GET'])
def find_serial(serial_number):
    """Reverse trace: serial -> work order and assembly."""
    db_session = get_session()
    found = serial_service.find_serial(db_session, serial_number)
    return jsonify(serialize_serial(found['serial'], found['work_order']))


@serials_bp.route('/<serial_number>', methods=['PUT'])
def update_serial(serial_number):
    """Change a serial's status and/or notes."""
    db_session = get_session()
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise ValidationError('Invalid body: expected a JSON object')

    serial = serial_service.update_serial_status(db_session, serial_number, payload)

    audit_service.log_action(db_session, 'updated', 'serial', serial_number,
                             f'Serial {serial_number} -> {serial.status.value}')
    notify_change('wo_serials', serial_number, 'update')
    return jsonify(serialize_serial(serial))
