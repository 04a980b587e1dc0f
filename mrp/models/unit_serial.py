"""Unit serial model for per-unit traceability."""
from sqlalchemy import Column, String, Text, DateTime, Enum, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from mrp.database import Base, BigIntPK
import enum


class SerialStatus(enum.Enum):
    """Unit serial lifecycle status enum."""
    BUILDING = "building"
    TESTING = "testing"
    COMPLETE = "complete"
    FAILED = "failed"
    SCRAPPED = "scrapped"


class UnitSerial(Base):
    """Serial number of one produced unit. Unique across all work orders."""

    __tablename__ = 'wo_serials'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    wo_id = Column(String(32), ForeignKey('work_orders.id', ondelete='CASCADE'), nullable=False, index=True)
    serial_number = Column(String(100), nullable=False, unique=True)
    status = Column(Enum(SerialStatus, name='serial_status'), nullable=False, default=SerialStatus.BUILDING)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationship
    work_order = relationship('WorkOrder', back_populates='serials')

    def __repr__(self):
        return f"<UnitSerial(serial_number={self.serial_number}, wo_id={self.wo_id}, status={self.status.value})>"
