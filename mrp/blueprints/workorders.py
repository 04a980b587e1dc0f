"""Work orders blueprint: lifecycle, kitting and serial traceability."""
from flask import Blueprint, jsonify, request, current_app
from mrp.database import get_session
from mrp.exceptions import ValidationError
from mrp.models import WorkOrderStatus
from mrp.services import (
    workorder_service, kitting_service, serial_service, audit_service, email_service
)
from mrp.services.notify_service import notify_change
from mrp.blueprints.metrics import record_kit, record_settlement
from mrp.utils.serializers import jsonable, serialize_work_order, serialize_serial

workorders_bp = Blueprint('workorders', __name__, url_prefix='/workorders')


def _json_body():
    """Parsed JSON object body; an empty body is {}."""
    data = request.get_json(silent=True)
    if data is None:
        if request.get_data():
            raise ValidationError('Invalid body: expected a JSON object')
        return {}
    if not isinstance(data, dict):
        raise ValidationError('Invalid body: expected a JSON object')
    return data


@workorders_bp.route('', methods=['GET'])
def list_work_orders():
    """List work orders, newest first (?status= filter)."""
    db_session = get_session()
    work_orders = workorder_service.list_work_orders(db_session, request.args.get('status'))
    return jsonify([serialize_work_order(wo) for wo in work_orders])


@workorders_bp.route('', methods=['POST'])
def create_work_order():
    """Create a work order."""
    db_session = get_session()
    payload = _json_body()

    work_order = workorder_service.create_work_order(db_session, payload)

    audit_service.log_action(db_session, 'created', 'workorder', work_order.id,
                             f'Created WO {work_order.id} for {work_order.assembly_ipn}')
    notify_change('work_orders', work_order.id, 'create')
    return jsonify(serialize_work_order(work_order))


@workorders_bp.route('/<wo_id>', methods=['GET'])
def get_work_order(wo_id):
    """Get one work order."""
    db_session = get_session()
    work_order = workorder_service.get_work_order(db_session, wo_id)
    return jsonify(serialize_work_order(work_order))


@workorders_bp.route('/<wo_id>', methods=['PUT'])
def update_work_order(wo_id):
    """
    Update fields and/or status of a work order.

    completed and cancelled run the settlement in the same transaction; the
    response includes what was consumed, produced or released.
    """
    db_session = get_session()
    payload = _json_body()

    result = workorder_service.update_work_order(db_session, wo_id, payload)
    work_order = result['work_order']
    previous = result['previous_status']
    settlement = result['settlement']

    if work_order.status != previous:
        action = work_order.status.value
        summary = f'WO {wo_id}: {previous.value} -> {work_order.status.value}'
    else:
        action = 'updated'
        summary = f'Updated WO {wo_id}'
    audit_service.log_action(db_session, action, 'workorder', wo_id, summary)
    notify_change('work_orders', wo_id, 'update')

    if settlement is not None:
        kind = 'completion' if work_order.status == WorkOrderStatus.COMPLETED else 'cancellation'
        record_settlement(kind)
        for ipn in settlement['touched_ipns']:
            notify_change('inventory', ipn, 'update')
        if kind == 'completion':
            email_service.alert_low_stock(db_session, settlement['touched_ipns'])

    response = serialize_work_order(work_order)
    response['settlement'] = jsonable(settlement)
    return jsonify(response)


@workorders_bp.route('/<wo_id>', methods=['DELETE'])
def delete_work_order(wo_id):
    """Delete a work order, releasing its reservations and removing its serials."""
    db_session = get_session()
    result = workorder_service.delete_work_order(db_session, wo_id)

    audit_service.log_action(db_session, 'deleted', 'workorder', wo_id,
                             f'Deleted WO {wo_id} ({result["serials_deleted"]} serials)')
    notify_change('work_orders', wo_id, 'delete')
    for line in result['released']:
        notify_change('inventory', line['ipn'], 'update')
    return jsonify({'status': 'deleted', **jsonable(result)})


@workorders_bp.route('/<wo_id>/kit', methods=['POST'])
def kit_work_order(wo_id):
    """
    Reserve BOM components for a work order.

    Always 200 for an existing, active order: shortages are reported per line
    in the body, not as an HTTP error.
    """
    db_session = get_session()
    report = kitting_service.kit_work_order(db_session, wo_id)

    record_kit(report)
    touched = [line['ipn'] for line in report['items'] if line['reserved_now'] > 0]
    audit_service.log_action(db_session, 'kit', 'workorder', wo_id,
                             f'Kitted WO {wo_id}: {report["status"]}')
    for ipn in touched:
        notify_change('inventory', ipn, 'update')
    if report['status'] != 'kitted':
        current_app.logger.info(f"[KIT] {wo_id} short on "
                                f"{[l['ipn'] for l in report['items'] if l['status'] != 'kitted']}")
    return jsonify(jsonable(report))


@workorders_bp.route('/<wo_id>/bom', methods=['GET'])
def work_order_bom(wo_id):
    """Requirement and availability snapshot per BOM line (nothing reserved).

    ?explode=true resolves sub-assemblies down to leaf parts.
    """
    db_session = get_session()
    explode = request.args.get('explode', '').lower() in ('1', 'true', 'yes')
    snapshot = workorder_service.work_order_requirements(
        db_session, wo_id, explode=explode, max_depth=current_app.config.get('BOM_MAX_DEPTH', 10)
    )
    return jsonify(jsonable(snapshot))


@workorders_bp.route('/<wo_id>/serials', methods=['GET'])
def list_serials(wo_id):
    """Forward trace: serials built by this work order."""
    db_session = get_session()
    serials = serial_service.list_serials(db_session, wo_id)
    return jsonify([serialize_serial(serial) for serial in serials])


@workorders_bp.route('/<wo_id>/serials', methods=['POST'])
def add_serial(wo_id):
    """Assign a serial (explicit or auto-generated) to a unit of this work order."""
    db_session = get_session()
    payload = _json_body()
    serial = serial_service.assign_serial(db_session, wo_id, payload)

    audit_service.log_action(db_session, 'created', 'serial', serial.serial_number,
                             f'Added serial {serial.serial_number} to WO {wo_id}')
    notify_change('wo_serials', serial.serial_number, 'create')
    return jsonify(serialize_serial(serial))
