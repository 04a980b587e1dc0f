"""Inventory transaction model (append-only stock history)."""
from sqlalchemy import Column, String, Text, Numeric, DateTime, Enum, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from mrp.database import Base, BigIntPK
import enum


class StockTransactionType(enum.Enum):
    """Inventory transaction type enum."""
    RECEIVE = "receive"
    ISSUE = "issue"
    ADJUST = "adjust"
    RETURN = "return"
    TRANSFER = "transfer"
    SCRAP = "scrap"


class StockTransaction(Base):
    """Immutable record of one on-hand movement. Reservations are not ledgered here."""

    __tablename__ = 'inventory_transactions'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    ipn = Column(String(100), ForeignKey('inventory.ipn'), nullable=False, index=True)
    type = Column(Enum(StockTransactionType, name='inventory_tx_type'), nullable=False)
    qty = Column(Numeric(14, 4), nullable=False)  # signed delta on on-hand
    reference = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationship
    item = relationship('StockItem', back_populates='transactions')

    def __repr__(self):
        return f"<StockTransaction(id={self.id}, ipn={self.ipn}, type={self.type.value}, qty={self.qty})>"
