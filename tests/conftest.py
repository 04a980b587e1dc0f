import pytest
from decimal import Decimal
import uuid

from mrp import create_app, database
from mrp.database import Base, get_session
from mrp.models import (
    StockItem, BOMLine, WorkOrder, WorkOrderStatus, WorkOrderPriority, UnitSerial
)


@pytest.fixture(scope='session')
def app():
    """Create application instance for testing."""
    app = create_app('config.TestConfig')
    app.config['TESTING'] = True
    return app


@pytest.fixture(autouse=True)
def reset_schema(app):
    """Fresh tables for every test (in-memory SQLite)."""
    import mrp.models  # noqa: F401
    database.db_session.remove()
    Base.metadata.drop_all(bind=database.engine)
    Base.metadata.create_all(bind=database.engine)
    yield
    database.db_session.remove()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session(app):
    """Create database session for testing."""
    session = get_session()
    yield session
    session.rollback()
    session.remove()


@pytest.fixture(scope='function')
def make_stock(session):
    """Create an inventory row; returns its IPN."""
    def _make(ipn, on_hand=0, reorder_point=0, reorder_qty=0, location=None):
        session.add(StockItem(
            ipn=ipn,
            qty_on_hand=Decimal(str(on_hand)),
            qty_reserved=Decimal('0'),
            reorder_point=Decimal(str(reorder_point)),
            reorder_qty=Decimal(str(reorder_qty)),
            location=location,
        ))
        session.commit()
        return ipn
    return _make


@pytest.fixture(scope='function')
def make_bom(session):
    """Create BOM lines for an assembly from a {child: qty_per} mapping."""
    def _make(parent_ipn, children):
        for child_ipn, qty_per in children.items():
            session.add(BOMLine(
                parent_ipn=parent_ipn,
                child_ipn=child_ipn,
                qty_per=Decimal(str(qty_per)),
            ))
        session.commit()
        return parent_ipn
    return _make


@pytest.fixture(scope='function')
def make_work_order(session):
    """Create a work order directly in the database; returns its id."""
    def _make(assembly_ipn, qty=1, status=WorkOrderStatus.OPEN, wo_id=None, **kwargs):
        wo_id = wo_id or f'WO-T-{uuid.uuid4().hex[:8].upper()}'
        session.add(WorkOrder(
            id=wo_id,
            assembly_ipn=assembly_ipn,
            qty=qty,
            status=status,
            priority=kwargs.pop('priority', WorkOrderPriority.NORMAL),
            **kwargs
        ))
        session.commit()
        return wo_id
    return _make


@pytest.fixture(scope='function')
def stock_of(session):
    """Re-read an inventory row from the database."""
    def _get(ipn):
        session.expire_all()
        return session.get(StockItem, ipn)
    return _get


@pytest.fixture(scope='function')
def work_order_of(session):
    """Re-read a work order from the database."""
    def _get(wo_id):
        session.expire_all()
        return session.get(WorkOrder, wo_id)
    return _get


@pytest.fixture(scope='function')
def serials_of(session):
    """Serial numbers currently owned by a work order."""
    def _get(wo_id):
        session.expire_all()
        return [
            s.serial_number for s in
            session.query(UnitSerial).filter(UnitSerial.wo_id == wo_id).order_by(UnitSerial.id).all()
        ]
    return _get
