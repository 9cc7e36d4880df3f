"""Domain models for the geographic rollup.

Value types are frozen pydantic models. A built `AggregationTree` is never
modified; a rebuild produces a new one.
"""

from collections.abc import Iterator, Sequence
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, NonNegativeInt, computed_field

from georollup.services.normalizer import SEPARATOR, title_case

NATIONAL_LABEL = "National Overview"
PATH_DELIMITER = "/"


class GeoLevel(str, Enum):
    """Levels of the hierarchy, with a synthetic national root above State."""

    NATIONAL = "national"
    STATE = "state"
    LGA = "lga"
    WARD = "ward"
    POLLING_UNIT = "pu"

    @property
    def depth(self) -> int:
        return _LEVEL_ORDER.index(self)

    @property
    def child(self) -> "GeoLevel | None":
        if self is GeoLevel.POLLING_UNIT:
            return None
        return _LEVEL_ORDER[self.depth + 1]

    @classmethod
    def from_depth(cls, depth: int) -> "GeoLevel":
        return _LEVEL_ORDER[depth]


_LEVEL_ORDER = (
    GeoLevel.NATIONAL,
    GeoLevel.STATE,
    GeoLevel.LGA,
    GeoLevel.WARD,
    GeoLevel.POLLING_UNIT,
)


def _merge_votes(first: dict[str, int], second: dict[str, int]) -> dict[str, int]:
    merged = dict(first)
    for party, votes in second.items():
        merged[party] = merged.get(party, 0) + votes
    return {party: votes for party, votes in merged.items() if votes}


class MetricBag(BaseModel):
    """
    Counters attached to every node. The completion rate is derived on read.

    `party_votes` holds per-party vote totals for election results and stays
    empty for mobilisation data. Parties with zero votes are never stored.
    """

    model_config = ConfigDict(frozen=True)

    total_primary_count: int = 0
    verified_count: int = 0
    unverified_count: int = 0
    party_votes: dict[str, int] = Field(default_factory=dict)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def completion_rate(self) -> float:
        if self.total_primary_count == 0:
            return 0.0
        return self.verified_count / self.total_primary_count

    def __add__(self, other: "MetricBag") -> "MetricBag":
        return MetricBag(
            total_primary_count=self.total_primary_count + other.total_primary_count,
            verified_count=self.verified_count + other.verified_count,
            unverified_count=self.unverified_count + other.unverified_count,
            party_votes=_merge_votes(self.party_votes, other.party_votes),
        )

    def counters(self) -> tuple[int, int, int]:
        return (self.total_primary_count, self.verified_count, self.unverified_count)

    def is_zero(self) -> bool:
        return not any(self.counters()) and not any(self.party_votes.values())

    def falls_short_of(self, other: "MetricBag") -> bool:
        """True when any counter or party total is below the other bag's."""
        if any(mine < theirs for mine, theirs in zip(self.counters(), other.counters())):
            return True
        return any(self.party_votes.get(party, 0) < votes for party, votes in other.party_votes.items())

    def excess_over(self, other: "MetricBag") -> "MetricBag":
        """Amount by which each counter and party total exceeds the other bag's, floored at zero."""
        mine, theirs = self.counters(), other.counters()
        return MetricBag(
            total_primary_count=max(0, mine[0] - theirs[0]),
            verified_count=max(0, mine[1] - theirs[1]),
            unverified_count=max(0, mine[2] - theirs[2]),
            party_votes={
                party: votes - other.party_votes.get(party, 0)
                for party, votes in self.party_votes.items()
                if votes > other.party_votes.get(party, 0)
            },
        )

    @classmethod
    def total(cls, bags: "Sequence[MetricBag]") -> "MetricBag":
        result = cls()
        for bag in bags:
            result = result + bag
        return result


class GroupedRow(BaseModel):
    """Counts pre-grouped by the data store at one of the four levels."""

    model_config = ConfigDict(frozen=True)

    state: str | None = None
    lga: str | None = None
    ward: str | None = None
    pu: str | None = None
    total_primary_count: int = Field(default=0, ge=0)
    verified_count: int = Field(default=0, ge=0)
    unverified_count: int = Field(default=0, ge=0)
    party_votes: dict[str, NonNegativeInt] = Field(default_factory=dict)

    @property
    def names(self) -> tuple[str | None, ...]:
        """Names from State down to the row's own level (gaps kept as None)."""
        parts = (self.state, self.lga, self.ward, self.pu)
        deepest = max((i for i, part in enumerate(parts) if part is not None), default=0)
        return parts[: deepest + 1]

    @property
    def level(self) -> GeoLevel:
        return GeoLevel.from_depth(len(self.names))

    @property
    def metrics(self) -> MetricBag:
        return MetricBag(
            total_primary_count=self.total_primary_count,
            verified_count=self.verified_count,
            unverified_count=self.unverified_count,
            party_votes={party: votes for party, votes in self.party_votes.items() if votes},
        )


class GeoNode(BaseModel):
    """One node of a built tree."""

    model_config = ConfigDict(frozen=True)

    kind: GeoLevel
    display_name: str
    canonical_key: str
    key: str
    parent_key: str = ""
    metrics: MetricBag = Field(default_factory=MetricBag)
    children: dict[str, "GeoNode"] = Field(default_factory=dict)
    synthetic: bool = False

    @property
    def is_leaf(self) -> bool:
        return not self.children

    @property
    def slug(self) -> str:
        """Legacy flat identifier, e.g. "abia-umuahia-north"."""
        return self.key.replace(PATH_DELIMITER, SEPARATOR)

    def iter_nodes(self) -> Iterator["GeoNode"]:
        """Pre-order traversal including this node."""
        yield self
        for child in self.children.values():
            yield from child.iter_nodes()


class AggregationTree(BaseModel):
    """A fully built rollup: national root plus build diagnostics."""

    model_config = ConfigDict(frozen=True)

    root: GeoNode
    source_rows: int = 0
    dropped_rows: int = 0

    @property
    def states(self) -> dict[str, GeoNode]:
        return self.root.children

    def find(self, keys: Sequence[str]) -> GeoNode | None:
        node = self.root
        for key in keys:
            child = node.children.get(key)
            if child is None:
                return None
            node = child
        return node

    def iter_nodes(self) -> Iterator[GeoNode]:
        return self.root.iter_nodes()


class LocationPath(BaseModel):
    """A resolved position in the hierarchy; no keys means the national root."""

    model_config = ConfigDict(frozen=True)

    keys: tuple[str, ...] = ()
    names: tuple[str, ...] = ()

    @property
    def depth(self) -> int:
        return len(self.keys)

    @property
    def level(self) -> GeoLevel:
        return GeoLevel.from_depth(self.depth)

    @property
    def key(self) -> str:
        return PATH_DELIMITER.join(self.keys)

    @property
    def slug(self) -> str:
        return SEPARATOR.join(self.keys)

    @property
    def display_name(self) -> str:
        if not self.keys:
            return NATIONAL_LABEL
        return self.names[-1] if self.names else title_case(self.keys[-1])

    def prefix(self, depth: int) -> "LocationPath":
        return LocationPath(keys=self.keys[:depth], names=self.names[:depth])

    def ancestors(self) -> list["LocationPath"]:
        """Every path from national down to (and including) this one."""
        return [self.prefix(depth) for depth in range(self.depth + 1)]


class Breadcrumb(BaseModel):
    """One step of the navigation trail."""

    model_config = ConfigDict(frozen=True)

    level: GeoLevel
    name: str
    key: str
    id: str


class GeoUnitSummary(BaseModel):
    """A node without its subtree, as returned to dashboard clients."""

    kind: GeoLevel
    name: str
    canonical_key: str
    key: str
    id: str
    parent_key: str
    metrics: MetricBag
    child_count: int
    synthetic: bool = False

    @classmethod
    def from_node(cls, node: GeoNode) -> "GeoUnitSummary":
        return cls(
            kind=node.kind,
            name=node.display_name,
            canonical_key=node.canonical_key,
            key=node.key,
            id=node.slug,
            parent_key=node.parent_key,
            metrics=node.metrics,
            child_count=len(node.children),
            synthetic=node.synthetic,
        )


GeoNode.model_rebuild()
