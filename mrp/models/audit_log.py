"""
Audit Log model for tracking changes made through the API.
"""
from sqlalchemy import Column, String, Text, DateTime
from datetime import datetime, timezone
from mrp.database import Base, BigIntPK


class AuditLog(Base):
    """Audit log entry written after a successful change."""

    __tablename__ = 'audit_log'

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    username = Column(String(100), nullable=False, default='system')
    action = Column(String(50), nullable=False, index=True)  # create, update, delete, kit, ...
    module = Column(String(50), nullable=False)  # workorder, inventory, serial
    record_id = Column(String(100), nullable=True)
    summary = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False,
                        default=lambda: datetime.now(timezone.utc), index=True)

    def __repr__(self):
        return f"<AuditLog {self.action} {self.module}:{self.record_id} by {self.username}>"
