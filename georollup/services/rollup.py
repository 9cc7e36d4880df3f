"""Rollup service: answers "show me level L at path P for caller C".

Order of work for one view:
1. resolve the path (structured parts, or a legacy flat id);
2. check the caller's scope on keys, before any data is loaded;
3. serve the tree from the hierarchy cache, or fetch + build + verify + cache;
4. slice the requested node: its stats, its direct children and a breadcrumb
   trail.
"""

from collections import Counter
from typing import Any

from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel

from georollup.core.errors import MalformedPathError, MergeInvariantViolation
from georollup.core.logging_config import alert_logger, get_logger
from georollup.models.hierarchy import (
    AggregationTree,
    Breadcrumb,
    GeoLevel,
    GeoNode,
    GeoUnitSummary,
    LocationPath,
    MetricBag,
)
from georollup.services.aggregation import build_tree, verify_tree
from georollup.services.hierarchy_cache import HierarchyCache
from georollup.services.location_keys import resolve_flat_id
from georollup.services.row_sources import RowSource
from georollup.services.scope import (
    AccessScope,
    authorize,
    check_access,
    check_flat_id_access,
)

logger = get_logger(__name__)


class RollupView(BaseModel):
    """One dashboard screen worth of data."""

    level: GeoLevel
    node: GeoUnitSummary
    stats: MetricBag
    items: list[GeoUnitSummary]
    breadcrumbs: list[Breadcrumb]
    summary: dict[str, int]
    built_at: float | None = None


def build_breadcrumbs(path: LocationPath) -> list[Breadcrumb]:
    """National down to the viewed node, derived from the path alone."""
    return [
        Breadcrumb(
            level=ancestor.level,
            name=ancestor.display_name,
            key=ancestor.key,
            id=ancestor.slug,
        )
        for ancestor in path.ancestors()
    ]


def _named_from_tree(tree: AggregationTree, path: LocationPath) -> LocationPath:
    """Swap the caller's spelling for the names stored in the tree."""
    names = []
    node = tree.root
    for key in path.keys:
        node = node.children[key]
        names.append(node.display_name)
    return LocationPath(keys=path.keys, names=tuple(names))


def summarize_descendants(node: GeoNode) -> dict[str, int]:
    """Count descendants per level, e.g. {"lga": 17, "ward": 184, "pu": 2240}."""
    counts = Counter(descendant.kind.value for descendant in node.iter_nodes() if descendant is not node)
    return {level.value: counts.get(level.value, 0) for level in GeoLevel if level.depth > node.kind.depth}


class RollupService:
    """Facade over resolver, builder, authorizer and cache."""

    def __init__(self, cache: HierarchyCache) -> None:
        self.cache = cache

    async def load_tree(self, source: RowSource) -> tuple[AggregationTree, float]:
        """
        Return the tree for a source and when it was built.

        Raises:
            DataSourceError: the fetch failed; nothing is written to the cache
            MergeInvariantViolation: the built tree is inconsistent
        """
        entry = self.cache.get_entry(source.cache_key)
        if entry is not None:
            return entry.tree, entry.built_at

        logger.info(f"Hierarchy cache miss for '{source.cache_key}', rebuilding")
        rows = await source.fetch_rows()
        tree = await run_in_threadpool(build_tree, rows)
        try:
            verify_tree(tree)
        except MergeInvariantViolation as e:
            alert_logger.log_invariant_violation(source.cache_key, e.message)
            raise

        entry = self.cache.put(source.cache_key, tree)
        return entry.tree, entry.built_at

    async def get_view(
        self,
        source: RowSource,
        level: GeoLevel,
        path: LocationPath,
        scope: AccessScope,
    ) -> RollupView:
        """
        View of the node at `path` for a caller.

        Raises:
            MalformedPathError: `path` is not at `level`
            ScopeDeniedError: outside the caller's subtree
            NotFoundError: no such node in the tree
            DataSourceError: the tree had to be rebuilt and the fetch failed
        """
        if path.level is not level:
            raise MalformedPathError(f"Expected a {level.value} path, got a {path.level.value} path")

        check_access(scope, path)
        tree, built_at = await self.load_tree(source)
        node = authorize(scope, tree, path)
        return self._slice(node, _named_from_tree(tree, path), built_at)

    async def get_view_for_flat_id(
        self,
        source: RowSource,
        level: GeoLevel,
        flat_id: str,
        scope: AccessScope,
    ) -> RollupView:
        """View for a legacy hyphen-joined identifier such as "abia-umuahia-north"."""
        check_flat_id_access(scope, flat_id, level)
        tree, built_at = await self.load_tree(source)
        path = resolve_flat_id(flat_id, level, tree, within=scope.keys)
        node = authorize(scope, tree, path)
        return self._slice(node, path, built_at)

    async def get_home_view(self, source: RowSource, scope: AccessScope) -> RollupView:
        """The caller's own pinned node: national for admins, their ward for a ward coordinator."""
        return await self.get_view(source, scope.level, scope.path, scope)

    def describe_scope(self, scope: AccessScope) -> dict[str, Any]:
        return {
            "level": scope.level.value,
            "assigned_location": scope.assigned_location,
            "allowed_levels": [level.value for level in scope.allowed_levels],
            "designation": scope.designation,
            "role": scope.role,
        }

    def invalidate(self, key: str | None = None) -> int:
        return self.cache.invalidate(key)

    def _slice(self, node: GeoNode, path: LocationPath, built_at: float | None) -> RollupView:
        items = sorted(
            (GeoUnitSummary.from_node(child) for child in node.children.values()),
            key=lambda item: (item.synthetic, item.name.lower()),
        )
        return RollupView(
            level=node.kind,
            node=GeoUnitSummary.from_node(node),
            stats=node.metrics,
            items=items,
            breadcrumbs=build_breadcrumbs(path),
            summary=summarize_descendants(node),
            built_at=built_at,
        )
