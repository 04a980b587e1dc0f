"""
Unit tests for the BOM requirement resolver.
"""

import pytest
from decimal import Decimal
from mrp.exceptions import CircularBOMError, ValidationError
from mrp.services.bom_service import resolve_requirements, explode_requirements


class TestResolveRequirements:
    """Tests for single-level resolve_requirements."""

    def test_no_bom_lines_returns_empty_list(self, session):
        """An assembly without a BOM is not an error."""
        assert resolve_requirements(session, 'ASY-NONE', 5) == []

    def test_required_is_build_qty_times_qty_per(self, session, make_bom):
        make_bom('ASY-100', {'RES-10K': 4, 'CAP-100N': 2, 'PCB-100': 1})

        reqs = resolve_requirements(session, 'ASY-100', 3)

        assert [r.ipn for r in reqs] == ['CAP-100N', 'PCB-100', 'RES-10K']
        by_ipn = {r.ipn: r for r in reqs}
        assert by_ipn['RES-10K'].required == Decimal('12')
        assert by_ipn['CAP-100N'].required == Decimal('6')
        assert by_ipn['PCB-100'].required == Decimal('3')
        assert by_ipn['RES-10K'].qty_per == Decimal('4')

    def test_fractional_qty_per(self, session, make_bom):
        make_bom('CBL-ASY', {'WIRE-RED': '0.5'})
        reqs = resolve_requirements(session, 'CBL-ASY', 3)
        assert reqs[0].required == Decimal('1.5')

    def test_does_not_recurse_into_sub_assemblies(self, session, make_bom):
        """Sub-assemblies are plain components for the single-level resolver."""
        make_bom('TOP', {'SUB': 2})
        make_bom('SUB', {'LEAF': 5})

        reqs = resolve_requirements(session, 'TOP', 1)

        assert [(r.ipn, r.required) for r in reqs] == [('SUB', Decimal('2'))]


class TestExplodeRequirements:
    """Tests for multi-level explode_requirements."""

    def test_multiplies_through_levels_and_aggregates(self, session, make_bom):
        make_bom('TOP', {'SUB-A': 2, 'SUB-B': 1, 'SCREW': 4})
        make_bom('SUB-A', {'SCREW': 3, 'PCB': 1})
        make_bom('SUB-B', {'SCREW': 1})

        reqs = {r.ipn: r for r in explode_requirements(session, 'TOP', 10)}

        # per TOP: SCREW = 4 + 2*3 + 1*1 = 11, PCB = 2*1 = 2
        assert set(reqs) == {'SCREW', 'PCB'}
        assert reqs['SCREW'].qty_per == Decimal('11')
        assert reqs['SCREW'].required == Decimal('110')
        assert reqs['PCB'].required == Decimal('20')

    def test_leaf_assembly_returns_empty(self, session):
        assert explode_requirements(session, 'NOTHING', 1) == []

    def test_cycle_is_rejected(self, session, make_bom):
        """A circular BOM raises instead of recursing forever."""
        make_bom('A', {'B': 1})
        make_bom('B', {'C': 1})
        make_bom('C', {'A': 1})

        with pytest.raises(CircularBOMError) as exc:
            explode_requirements(session, 'A', 1)

        assert exc.value.path == ['A', 'B', 'C', 'A']
        assert exc.value.status_code == 400

    def test_self_reference_is_rejected(self, session, make_bom):
        make_bom('SELF', {'SELF': 1})
        with pytest.raises(CircularBOMError):
            explode_requirements(session, 'SELF', 1)

    def test_depth_limit(self, session, make_bom):
        for level in range(5):
            make_bom(f'L{level}', {f'L{level + 1}': 1})

        with pytest.raises(ValidationError):
            explode_requirements(session, 'L0', 1, max_depth=3)

        reqs = explode_requirements(session, 'L0', 1, max_depth=10)
        assert [(r.ipn, r.required) for r in reqs] == [('L5', Decimal('1'))]
