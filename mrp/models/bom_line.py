"""BOM line model (parent assembly -> child component)."""
from sqlalchemy import Column, String, Text, Numeric, CheckConstraint, UniqueConstraint
from mrp.database import Base, BigIntPK


class BOMLine(Base):
    """One direct component of an assembly. Read-only to the fulfillment core."""

    __tablename__ = 'bom'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    parent_ipn = Column(String(100), nullable=False, index=True)
    child_ipn = Column(String(100), nullable=False)
    qty_per = Column(Numeric(14, 4), nullable=False, default=1)
    reference_designator = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint('parent_ipn', 'child_ipn', name='uq_bom_parent_child'),
        CheckConstraint('qty_per > 0', name='ck_bom_qty_per_positive'),
    )

    def __repr__(self):
        return f"<BOMLine({self.parent_ipn} -> {self.child_ipn} x {self.qty_per})>"
