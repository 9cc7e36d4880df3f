"""Aggregation builder: grouped rows in, nested rollup tree out.

The data store groups counts at each of the four levels separately, so the
same citizen is counted once per level. Rows are processed level by level;
deeper rows attach under their (possibly synthesized) ancestors and rows whose
names normalize to an existing sibling are merged by summing.

After all rows are in, every node with children is rebalanced so that its
counters equal the sum of its children. When a node reported more than its
children add up to (records with a State but no LGA, say), the difference is
kept in a synthetic "Unassigned" child instead of being lost. Per-party vote
totals are rebalanced the same way.
"""

from collections.abc import Iterable

from georollup.core.errors import MergeInvariantViolation
from georollup.core.logging_config import get_logger
from georollup.models.hierarchy import (
    NATIONAL_LABEL,
    PATH_DELIMITER,
    AggregationTree,
    GeoLevel,
    GeoNode,
    GroupedRow,
    MetricBag,
)
from georollup.services.normalizer import normalize

logger = get_logger(__name__)

UNASSIGNED_KEY = "unassigned"
UNASSIGNED_LABEL = "Unassigned"


class _DraftNode:
    """Mutable node used only while a tree is being built."""

    __slots__ = ("kind", "display_name", "canonical_key", "key", "parent_key", "own", "reported", "children")

    def __init__(self, kind: GeoLevel, display_name: str, canonical_key: str, key: str, parent_key: str):
        self.kind = kind
        self.display_name = display_name
        self.canonical_key = canonical_key
        self.key = key
        self.parent_key = parent_key
        self.own = MetricBag()
        self.reported = False
        self.children: dict[str, _DraftNode] = {}

    def child(self, canonical_key: str, display_name: str) -> "_DraftNode":
        """Return the child with this key, synthesizing an empty one if absent."""
        existing = self.children.get(canonical_key)
        if existing is not None:
            return existing
        key = f"{self.key}{PATH_DELIMITER}{canonical_key}" if self.key else canonical_key
        node = _DraftNode(self.kind.child, display_name, canonical_key, key, self.key)
        self.children[canonical_key] = node
        return node


def _row_keys(row: GroupedRow) -> tuple[tuple[str, ...], tuple[str, ...]] | None:
    names = tuple((name or "").strip() for name in row.names)
    keys = tuple(normalize(name) for name in names)
    if not all(keys):
        return None
    return keys, names


def _describe(bag: MetricBag) -> str:
    if not bag.party_votes:
        return str(bag.counters())
    return f"{bag.counters()} votes={dict(sorted(bag.party_votes.items()))}"


def build_tree(rows: Iterable[GroupedRow], *, label: str = NATIONAL_LABEL) -> AggregationTree:
    """
    Build an aggregation tree from grouped rows.

    Args:
        rows: Counts grouped at State, LGA, Ward or Polling Unit level, in any order
        label: Display name of the national root

    Returns:
        A new immutable AggregationTree. Empty input gives a tree with no States.
    """
    root = _DraftNode(GeoLevel.NATIONAL, label, "", "", "")

    by_level: dict[GeoLevel, list[GroupedRow]] = {level: [] for level in GeoLevel}
    source_rows = 0
    for row in rows:
        source_rows += 1
        by_level[row.level].append(row)

    dropped = 0
    merged = 0
    synthesized = 0
    for level in (GeoLevel.STATE, GeoLevel.LGA, GeoLevel.WARD, GeoLevel.POLLING_UNIT):
        for row in by_level[level]:
            resolved = _row_keys(row)
            if resolved is None:
                dropped += 1
                logger.warning(
                    f"Dropping {level.value} row with an empty location name: "
                    f"state={row.state!r} lga={row.lga!r} ward={row.ward!r} pu={row.pu!r}"
                )
                continue

            keys, names = resolved
            node = root
            for depth, (key, name) in enumerate(zip(keys, names), start=1):
                is_target = depth == len(keys)
                if not is_target and key not in node.children:
                    synthesized += 1
                    logger.debug(f"Synthesizing missing {GeoLevel.from_depth(depth).value} '{name}' for {level.value} row")
                node = node.child(key, name)

            if node.reported:
                merged += 1
                logger.debug(f"Merging duplicate {level.value} '{node.key}' (spelling: {names[-1]!r})")
            node.own = node.own + row.metrics
            node.reported = True

    tree_root = _freeze(root)
    logger.info(
        f"Built aggregation tree: {len(tree_root.children)} states from {source_rows} rows "
        f"({merged} merged, {synthesized} parents synthesized, {dropped} dropped)"
    )
    return AggregationTree(root=tree_root, source_rows=source_rows, dropped_rows=dropped)


def _unique_child_key(children: dict[str, GeoNode], base: str) -> str:
    key = base
    suffix = 2
    while key in children:
        key = f"{base}-{suffix}"
        suffix += 1
    return key


def _freeze(draft: _DraftNode) -> GeoNode:
    """Convert a draft subtree into immutable nodes, rebalancing counters."""
    children = {key: _freeze(child) for key, child in draft.children.items()}

    if not children:
        metrics = draft.own
    else:
        children_total = MetricBag.total([child.metrics for child in children.values()])
        metrics = children_total
        if draft.reported:
            if draft.own.falls_short_of(children_total):
                logger.warning(
                    f"{draft.kind.value} '{draft.key}' reported {_describe(draft.own)} "
                    f"but its children sum to {_describe(children_total)}"
                )
            residual = draft.own.excess_over(children_total)
            if not residual.is_zero():
                key = _unique_child_key(children, UNASSIGNED_KEY)
                children[key] = GeoNode(
                    kind=draft.kind.child,
                    display_name=UNASSIGNED_LABEL,
                    canonical_key=key,
                    key=f"{draft.key}{PATH_DELIMITER}{key}" if draft.key else key,
                    parent_key=draft.key,
                    metrics=residual,
                    synthetic=True,
                )
                metrics = children_total + residual

    return GeoNode(
        kind=draft.kind,
        display_name=draft.display_name,
        canonical_key=draft.canonical_key,
        key=draft.key,
        parent_key=draft.parent_key,
        metrics=metrics,
        children=children,
    )


def verify_tree(tree: AggregationTree) -> None:
    """
    Re-check a built tree before it is published.

    Raises:
        MergeInvariantViolation: a parent does not equal the sum of its
            children, or keys and levels are inconsistent
    """
    for node in tree.iter_nodes():
        for canonical_key, child in node.children.items():
            if not canonical_key or child.canonical_key != canonical_key:
                raise MergeInvariantViolation(f"child key mismatch under '{node.key}': {canonical_key!r}")
            if child.parent_key != node.key:
                raise MergeInvariantViolation(f"'{child.key}' points at parent '{child.parent_key}', not '{node.key}'")
            if child.kind is not node.kind.child:
                raise MergeInvariantViolation(f"'{child.key}' is a {child.kind.value} under a {node.kind.value}")
        if node.children:
            summed = MetricBag.total([child.metrics for child in node.children.values()])
            if summed != node.metrics:
                raise MergeInvariantViolation(
                    f"'{node.key or 'national'}' has {_describe(node.metrics)} "
                    f"but its children sum to {_describe(summed)}"
                )
