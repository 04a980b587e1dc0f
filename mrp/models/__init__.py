"""Models package - exports all SQLAlchemy models."""
from mrp.models.stock_item import StockItem
from mrp.models.stock_transaction import StockTransaction, StockTransactionType
from mrp.models.bom_line import BOMLine
from mrp.models.work_order import WorkOrder, WorkOrderStatus, WorkOrderPriority, TERMINAL_STATUSES
from mrp.models.reservation import Reservation
from mrp.models.unit_serial import UnitSerial, SerialStatus
from mrp.models.audit_log import AuditLog

__all__ = [
    # Inventory
    'StockItem', 'StockTransaction', 'StockTransactionType', 'BOMLine',
    # Production
    'WorkOrder', 'WorkOrderStatus', 'WorkOrderPriority', 'TERMINAL_STATUSES',
    'Reservation', 'UnitSerial', 'SerialStatus',
    # Audit
    'AuditLog',
]
