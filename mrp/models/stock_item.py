"""Stock item model: on-hand and reserved quantity per part (IPN)."""
from decimal import Decimal
from sqlalchemy import Column, String, Text, Numeric, DateTime, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from mrp.database import Base


class StockItem(Base):
    """Inventory row for one part. Only the inventory ledger mutates the quantities."""

    __tablename__ = 'inventory'

    ipn = Column(String(100), primary_key=True)
    qty_on_hand = Column(Numeric(14, 4), nullable=False, default=0)
    qty_reserved = Column(Numeric(14, 4), nullable=False, default=0)
    location = Column(String(100), nullable=True)
    reorder_point = Column(Numeric(14, 4), nullable=False, default=0)
    reorder_qty = Column(Numeric(14, 4), nullable=False, default=0)
    description = Column(Text, nullable=True)
    mpn = Column(String(100), nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint('qty_on_hand >= 0', name='ck_inventory_on_hand_non_negative'),
        CheckConstraint('qty_reserved >= 0', name='ck_inventory_reserved_non_negative'),
        CheckConstraint('qty_reserved <= qty_on_hand', name='ck_inventory_reserved_within_on_hand'),
        CheckConstraint('reorder_point >= 0', name='ck_inventory_reorder_point_non_negative'),
        CheckConstraint('reorder_qty >= 0', name='ck_inventory_reorder_qty_non_negative'),
    )

    transactions = relationship('StockTransaction', back_populates='item', order_by='StockTransaction.id')

    @property
    def available_qty(self) -> Decimal:
        """On hand minus reserved, floored at zero."""
        on_hand = Decimal(str(self.qty_on_hand or 0))
        reserved = Decimal(str(self.qty_reserved or 0))
        return max(on_hand - reserved, Decimal('0'))

    @property
    def is_low_stock(self) -> bool:
        reorder_point = Decimal(str(self.reorder_point or 0))
        return reorder_point > 0 and Decimal(str(self.qty_on_hand or 0)) < reorder_point

    def __repr__(self):
        return f"<StockItem(ipn={self.ipn}, on_hand={self.qty_on_hand}, reserved={self.qty_reserved})>"
