"""Reservation model: stock held by one work order for one component."""
from sqlalchemy import Column, String, Numeric, DateTime, ForeignKey, CheckConstraint, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from mrp.database import Base, BigIntPK


class Reservation(Base):
    """
    Per-order claim on a component.

    The sum of `qty` over all rows for an IPN equals `inventory.qty_reserved`
    for that IPN. Settlement consumes or releases these rows, never another
    order's share of the aggregate.
    """

    __tablename__ = 'reservations'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    work_order_id = Column(String(32), ForeignKey('work_orders.id', ondelete='CASCADE'), nullable=False, index=True)
    ipn = Column(String(100), ForeignKey('inventory.ipn'), nullable=False, index=True)
    qty = Column(Numeric(14, 4), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint('work_order_id', 'ipn', name='uq_reservations_work_order_ipn'),
        CheckConstraint('qty > 0', name='ck_reservations_qty_positive'),
    )

    # Relationships
    work_order = relationship('WorkOrder', back_populates='reservations')
    item = relationship('StockItem')

    def __repr__(self):
        return f"<Reservation(work_order_id={self.work_order_id}, ipn={self.ipn}, qty={self.qty})>"
