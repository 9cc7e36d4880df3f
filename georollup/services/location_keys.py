"""Location key resolution.

Two kinds of input reach the dashboards:

- structured paths, one segment per level (`/states/abia/lgas/umuahia-north`),
  resolved without looking at any data;
- legacy flat identifiers where every level is glued together with hyphens
  (`abia-umuahia-north-ward-1`). Since names contain hyphens themselves, the
  split points are unknown and have to be searched against the tree.
"""

from collections.abc import Sequence

from georollup.core.errors import MalformedPathError, PathNotFoundError
from georollup.models.hierarchy import AggregationTree, GeoLevel, GeoNode, LocationPath
from georollup.services.normalizer import SEPARATOR, normalize, title_case

MAX_DEPTH = GeoLevel.POLLING_UNIT.depth


def _display_name(raw: str, key: str) -> str:
    """Keep free text as typed; turn slugs back into labels."""
    stripped = raw.strip()
    return title_case(key) if stripped == key else stripped


def resolve_path(parts: Sequence[str | None]) -> LocationPath:
    """
    Resolve `[state, lga?, ward?, pu?]` into a LocationPath.

    Trailing missing parts are fine (a State path has one part). A blank part
    followed by a deeper one is not: there is no Ward without an LGA.

    Raises:
        MalformedPathError: gap in the path, or more than four parts
    """
    trimmed = list(parts)
    while trimmed and not normalize(trimmed[-1]):
        trimmed.pop()

    if len(trimmed) > MAX_DEPTH:
        raise MalformedPathError(f"A location path has at most {MAX_DEPTH} parts, got {len(trimmed)}")

    keys: list[str] = []
    names: list[str] = []
    for depth, part in enumerate(trimmed, start=1):
        key = normalize(part)
        if not key:
            level = GeoLevel.from_depth(depth)
            deeper = GeoLevel.from_depth(len(trimmed))
            raise MalformedPathError(f"Cannot resolve a {deeper.value} path without its {level.value}")
        keys.append(key)
        names.append(_display_name(part or "", key))

    return LocationPath(keys=tuple(keys), names=tuple(names))


def resolve_flat_id(
    flat_id: str,
    level: GeoLevel,
    tree: AggregationTree,
    *,
    within: Sequence[str] = (),
) -> LocationPath:
    """
    Resolve a hyphen-joined identifier spanning several levels.

    Split points are tried successively, shortest leading name first, and the
    first split whose keys all exist in the tree wins. For
    "abia-umuahia-north-ward-1" at ward level that is
    ("abia", "umuahia-north", "ward-1") when the tree has LGA "Umuahia North"
    and Ward "Ward 1".

    Args:
        flat_id: The identifier, slug or free text
        level: Level of the node the identifier names
        tree: Tree whose keys decide between candidate splits
        within: Keys the leading levels must equal (a caller's pinned scope)

    Raises:
        MalformedPathError: fewer hyphen-separated tokens than levels
        PathNotFoundError: no split matches the tree
    """
    if level is GeoLevel.NATIONAL:
        raise MalformedPathError("The national view has no identifier")

    normalized = normalize(flat_id)
    tokens = normalized.split(SEPARATOR) if normalized else []
    if len(tokens) < level.depth:
        raise MalformedPathError(
            f"Identifier '{flat_id}' is too short for a {level.value} (expected {level.depth} parts)"
        )

    match = _search(tree.root, tokens, level.depth, tuple(within))
    if match is None:
        raise PathNotFoundError(f"No {level.value} matches identifier '{flat_id}'")

    return LocationPath(
        keys=tuple(node.canonical_key for node in match),
        names=tuple(node.display_name for node in match),
    )


def _search(
    node: GeoNode,
    tokens: list[str],
    levels_left: int,
    within: tuple[str, ...],
) -> list[GeoNode] | None:
    """Depth-first split search; returns the matched chain of nodes."""
    if levels_left == 1:
        key = SEPARATOR.join(tokens)
        child = node.children.get(key)
        if child is None or (within and within[0] != key):
            return None
        return [child]

    # Leave at least one token for each deeper level
    for end in range(1, len(tokens) - levels_left + 2):
        key = SEPARATOR.join(tokens[:end])
        if within and within[0] != key:
            continue
        child = node.children.get(key)
        if child is None:
            continue
        rest = _search(child, tokens[end:], levels_left - 1, within[1:])
        if rest is not None:
            return [child, *rest]
    return None
