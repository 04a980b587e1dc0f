"""Inventory blueprint: stock levels, history and manual transactions."""
from flask import Blueprint, jsonify, request
from mrp.database import get_session
from mrp.exceptions import ValidationError
from mrp.services import inventory_service, audit_service, email_service
from mrp.services.notify_service import notify_change
from mrp.utils.serializers import serialize_stock_item, serialize_transaction

inventory_bp = Blueprint('inventory', __name__, url_prefix='/inventory')


@inventory_bp.route('', methods=['GET'])
def list_inventory():
    """List stock items (?low_stock=true for items below reorder point)."""
    db_session = get_session()
    low_stock = request.args.get('low_stock', '').lower() in ('1', 'true', 'yes')
    items = inventory_service.list_inventory(db_session, low_stock=low_stock)
    return jsonify([serialize_stock_item(item) for item in items])


@inventory_bp.route('/transact', methods=['POST'])
def transact():
    """Apply a manual receive / issue / adjust / return / scrap / transfer."""
    db_session = get_session()
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise ValidationError('Invalid body: expected a JSON object')

    item = inventory_service.post_transaction(db_session, payload)
    tx_type = payload.get('type')

    audit_service.log_action(db_session, tx_type, 'inventory', item.ipn,
                             f'Inventory {tx_type}: {item.ipn}')
    notify_change('inventory', item.ipn, 'update')
    email_service.alert_low_stock(db_session, [item.ipn])
    return jsonify(serialize_stock_item(item))


@inventory_bp.route('/<ipn>', methods=['GET'])
def get_item(ipn):
    """Get one stock item."""
    db_session = get_session()
    return jsonify(serialize_stock_item(inventory_service.get_stock_item(db_session, ipn)))


@inventory_bp.route('/<ipn>/history', methods=['GET'])
def history(ipn):
    """Transaction history for one IPN, newest first."""
    db_session = get_session()
    transactions = inventory_service.get_history(db_session, ipn)
    return jsonify([serialize_transaction(tx) for tx in transactions])
