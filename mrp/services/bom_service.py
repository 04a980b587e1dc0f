"""BOM requirement resolver."""
import logging
from collections import OrderedDict
from dataclasses import dataclass
from decimal import Decimal
from typing import List

from mrp.exceptions import CircularBOMError, ValidationError
from mrp.models import BOMLine

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 10


@dataclass(frozen=True)
class Requirement:
    """Quantity of one component needed to build an assembly."""
    ipn: str
    qty_per: Decimal
    required: Decimal


def get_bom_lines(session, assembly_ipn: str) -> List[BOMLine]:
    """Direct BOM lines of an assembly, ordered by component IPN."""
    return (
        session.query(BOMLine)
        .filter(BOMLine.parent_ipn == assembly_ipn)
        .order_by(BOMLine.child_ipn)
        .all()
    )


def resolve_requirements(session, assembly_ipn: str, build_qty) -> List[Requirement]:
    """
    Single-level expansion: one Requirement per direct BOM line.

    required = build_qty * qty_per. Sub-assemblies are treated as plain
    components. An assembly with no BOM lines yields an empty list.
    """
    build_qty = Decimal(str(build_qty))
    return [
        Requirement(
            ipn=line.child_ipn,
            qty_per=Decimal(str(line.qty_per)),
            required=build_qty * Decimal(str(line.qty_per)),
        )
        for line in get_bom_lines(session, assembly_ipn)
    ]


def explode_requirements(session, assembly_ipn: str, build_qty,
                         max_depth: int = DEFAULT_MAX_DEPTH) -> List[Requirement]:
    """
    Multi-level expansion down to leaf components.

    Quantities of a leaf reached through several paths are summed. A leaf's
    qty_per is its total per single top-level assembly.

    Raises:
        CircularBOMError: an assembly appears inside its own sub-tree.
        ValidationError: the tree is deeper than max_depth.
    """
    build_qty = Decimal(str(build_qty))
    totals = OrderedDict()
    cache = {}

    def lines_for(ipn):
        if ipn not in cache:
            cache[ipn] = get_bom_lines(session, ipn)
        return cache[ipn]

    def walk(ipn, multiplier, path):
        if len(path) > max_depth:
            raise ValidationError(
                f'BOM for {assembly_ipn} exceeds maximum depth of {max_depth}',
                {'assembly_ipn': f'deeper than {max_depth} levels'}
            )
        for line in lines_for(ipn):
            child = line.child_ipn
            if child in path:
                raise CircularBOMError(path + [child])
            qty = multiplier * Decimal(str(line.qty_per))
            if lines_for(child):
                walk(child, qty, path + [child])
            else:
                totals[child] = totals.get(child, Decimal('0')) + qty

    walk(assembly_ipn, Decimal('1'), [assembly_ipn])

    result = [
        Requirement(ipn=ipn, qty_per=per_unit, required=per_unit * build_qty)
        for ipn, per_unit in sorted(totals.items())
    ]
    logger.debug(f"[BOM] Exploded {assembly_ipn} x {build_qty} into {len(result)} leaf components")
    return result
