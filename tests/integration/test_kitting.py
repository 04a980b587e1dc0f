"""
Integration tests for kitting (allocation) against the inventory ledger.
"""

import pytest
from decimal import Decimal
from mrp.exceptions import NotFoundError, ConflictError
from mrp.models import Reservation, StockTransaction, WorkOrderStatus
from mrp.services.kitting_service import kit_work_order, overall_status
from mrp.services.inventory_service import receive


def _held(session, wo_id, ipn):
    session.expire_all()
    res = session.query(Reservation).filter_by(work_order_id=wo_id, ipn=ipn).first()
    return res.qty if res else Decimal('0')


class TestKitScenarios:
    """First-come-first-served kitting of competing orders."""

    def test_full_kit_reserves_requirement(self, session, make_stock, make_bom, make_work_order, stock_of):
        """P at 10/0, order needs 5 -> kitted, P at 10/5."""
        make_stock('P', on_hand=10)
        make_bom('ASY-1', {'P': 1})
        wo_id = make_work_order('ASY-1', qty=5)

        report = kit_work_order(session, wo_id)

        assert report['wo_id'] == wo_id
        assert report['status'] == 'kitted'
        line = report['items'][0]
        assert line['ipn'] == 'P'
        assert line['required'] == Decimal('5')
        assert line['kitted'] == Decimal('5')
        assert line['status'] == 'kitted'
        item = stock_of('P')
        assert item.qty_on_hand == Decimal('10')
        assert item.qty_reserved == Decimal('5')
        assert _held(session, wo_id, 'P') == Decimal('5')

    def test_second_order_gets_the_remainder(self, session, make_stock, make_bom, make_work_order, stock_of):
        """P at 10/5, second order needs 8 -> partial with 5 kitted, reserved stops at 10."""
        make_stock('P', on_hand=10)
        make_bom('ASY-1', {'P': 1})
        first = make_work_order('ASY-1', qty=5)
        second = make_work_order('ASY-1', qty=8)
        kit_work_order(session, first)

        report = kit_work_order(session, second)

        line = report['items'][0]
        assert line['status'] == 'partial'
        assert line['kitted'] == Decimal('5')
        assert line['shortage'] == Decimal('3')
        assert report['status'] == 'partial'
        item = stock_of('P')
        assert item.qty_reserved == Decimal('10')
        assert item.qty_reserved <= item.qty_on_hand

    def test_no_stock_is_shortage_not_error(self, session, make_bom, make_work_order, stock_of):
        """A never-stocked component is reported as a shortage without creating an inventory row."""
        make_bom('ASY-2', {'MISSING-PART': 2})
        wo_id = make_work_order('ASY-2', qty=3)

        report = kit_work_order(session, wo_id)

        assert report['status'] == 'shortage'
        assert report['items'][0]['status'] == 'shortage'
        assert report['items'][0]['kitted'] == Decimal('0')
        assert report['items'][0]['required'] == Decimal('6')
        assert report['items'][0]['on_hand'] == Decimal('0')
        assert report['items'][0]['available'] == Decimal('0')
        assert stock_of('MISSING-PART') is None
        assert session.query(Reservation).count() == 0

    def test_worst_line_wins(self, session, make_stock, make_bom, make_work_order):
        make_stock('A', on_hand=100)
        make_stock('B', on_hand=1)
        make_bom('ASY-3', {'A': 1, 'B': 2, 'C': 1})
        wo_id = make_work_order('ASY-3', qty=2)

        report = kit_work_order(session, wo_id)

        statuses = {line['ipn']: line['status'] for line in report['items']}
        assert statuses == {'A': 'kitted', 'B': 'partial', 'C': 'shortage'}
        assert report['status'] == 'shortage'

    def test_empty_bom_kits_trivially(self, session, make_work_order):
        wo_id = make_work_order('NO-BOM', qty=4)
        report = kit_work_order(session, wo_id)
        assert report['status'] == 'kitted'
        assert report['items'] == []

    def test_many_orders_never_over_reserve(self, session, make_stock, make_bom, make_work_order, stock_of):
        make_stock('P', on_hand=12)
        make_bom('ASY-1', {'P': 1})
        for _ in range(6):
            kit_work_order(session, make_work_order('ASY-1', qty=5))

        item = stock_of('P')
        assert item.qty_reserved == Decimal('12')
        total_held = sum(r.qty for r in session.query(Reservation).filter_by(ipn='P').all())
        assert total_held == item.qty_reserved


class TestReKitting:
    """Repeated kit requests on the same order."""

    def test_rekit_claims_only_the_shortfall(self, session, make_stock, make_bom, make_work_order, stock_of):
        make_stock('P', on_hand=3)
        make_bom('ASY-1', {'P': 1})
        wo_id = make_work_order('ASY-1', qty=5)
        assert kit_work_order(session, wo_id)['status'] == 'partial'

        item = stock_of('P')
        receive(session, item, Decimal('10'), reference='PO-1')
        session.commit()

        report = kit_work_order(session, wo_id)

        line = report['items'][0]
        assert line['previously_held'] == Decimal('3')
        assert line['reserved_now'] == Decimal('2')
        assert line['kitted'] == Decimal('5')
        assert report['status'] == 'kitted'
        assert stock_of('P').qty_reserved == Decimal('5')
        assert _held(session, wo_id, 'P') == Decimal('5')

    def test_rekit_of_kitted_order_is_idempotent(self, session, make_stock, make_bom, make_work_order, stock_of):
        make_stock('P', on_hand=10)
        make_bom('ASY-1', {'P': 1})
        wo_id = make_work_order('ASY-1', qty=4)
        kit_work_order(session, wo_id)

        report = kit_work_order(session, wo_id)

        assert report['status'] == 'kitted'
        assert report['items'][0]['reserved_now'] == Decimal('0')
        assert stock_of('P').qty_reserved == Decimal('4')

    def test_kitting_does_not_change_status_or_ledger(self, session, make_stock, make_bom,
                                                      make_work_order, work_order_of):
        make_stock('P', on_hand=10)
        make_bom('ASY-1', {'P': 1})
        wo_id = make_work_order('ASY-1', qty=2, status=WorkOrderStatus.DRAFT)

        kit_work_order(session, wo_id)

        assert work_order_of(wo_id).status == WorkOrderStatus.DRAFT
        assert session.query(StockTransaction).count() == 0


class TestKitRejections:
    """Orders that cannot be kitted."""

    def test_unknown_work_order(self, session):
        with pytest.raises(NotFoundError):
            kit_work_order(session, 'WO-NOPE')

    @pytest.mark.parametrize('status', [WorkOrderStatus.COMPLETED, WorkOrderStatus.CANCELLED])
    def test_terminal_order_is_conflict(self, session, make_stock, make_bom, make_work_order, stock_of, status):
        make_stock('P', on_hand=10)
        make_bom('ASY-1', {'P': 1})
        wo_id = make_work_order('ASY-1', qty=2, status=status)

        with pytest.raises(ConflictError):
            kit_work_order(session, wo_id)

        assert stock_of('P').qty_reserved == Decimal('0')


class TestOverallStatus:
    """Tests for overall_status."""

    def test_rules(self):
        assert overall_status([]) == 'kitted'
        assert overall_status([{'status': 'kitted'}, {'status': 'kitted'}]) == 'kitted'
        assert overall_status([{'status': 'kitted'}, {'status': 'partial'}]) == 'partial'
        assert overall_status([{'status': 'partial'}, {'status': 'shortage'}]) == 'shortage'
