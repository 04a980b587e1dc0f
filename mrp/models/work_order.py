"""Work order model."""
from sqlalchemy import Column, String, Integer, Text, Date, DateTime, Enum, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from mrp.database import Base
import enum


class WorkOrderStatus(enum.Enum):
    """Work order status enum."""
    DRAFT = "draft"
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    ON_HOLD = "on_hold"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class WorkOrderPriority(enum.Enum):
    """Work order priority enum."""
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    CRITICAL = "critical"


TERMINAL_STATUSES = frozenset({WorkOrderStatus.COMPLETED, WorkOrderStatus.CANCELLED})


class WorkOrder(Base):
    """Production order for building `qty` units of an assembly."""

    __tablename__ = 'work_orders'

    id = Column(String(32), primary_key=True)
    assembly_ipn = Column(String(100), nullable=False, index=True)
    qty = Column(Integer, nullable=False, default=1)
    qty_good = Column(Integer, nullable=True)
    qty_scrap = Column(Integer, nullable=True)
    status = Column(Enum(WorkOrderStatus, name='work_order_status'), nullable=False, default=WorkOrderStatus.OPEN)
    priority = Column(Enum(WorkOrderPriority, name='work_order_priority'), nullable=False, default=WorkOrderPriority.NORMAL)
    notes = Column(Text, nullable=True)
    due_date = Column(Date, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint('qty > 0', name='ck_work_orders_qty_positive'),
        CheckConstraint('qty_good IS NULL OR qty_good >= 0', name='ck_work_orders_qty_good_non_negative'),
        CheckConstraint('qty_scrap IS NULL OR qty_scrap >= 0', name='ck_work_orders_qty_scrap_non_negative'),
    )

    # Relationships
    serials = relationship('UnitSerial', back_populates='work_order', cascade='all, delete-orphan',
                           passive_deletes=True, order_by='UnitSerial.id')
    reservations = relationship('Reservation', back_populates='work_order', cascade='all, delete-orphan',
                                passive_deletes=True, order_by='Reservation.ipn')

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def __repr__(self):
        return f"<WorkOrder(id={self.id}, assembly={self.assembly_ipn}, qty={self.qty}, status={self.status.value})>"
