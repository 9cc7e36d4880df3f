"""Scope authorization for dashboard callers.

A caller's designation pins them to one node of the hierarchy. They may view
that node and everything below it, nothing above it and nothing beside it.
Decisions compare canonical keys only, so "Aba North" and "aba-north" are the
same LGA.

    admin / national-coordinator  -> national  (whole tree)
    state-coordinator             -> state     (assigned State)
    lga-coordinator               -> lga       (assigned State + LGA)
    ward-coordinator              -> ward      (assigned State + LGA + Ward)
"""

from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from georollup.core.errors import NotFoundError, ScopeDeniedError
from georollup.models.hierarchy import (
    AggregationTree,
    GeoLevel,
    GeoNode,
    LocationPath,
)
from georollup.services.location_keys import resolve_path
from georollup.services.normalizer import SEPARATOR, names_match, normalize

ADMIN_ROLE = "admin"


class Designation(str, Enum):
    """Coordinator designations that grant dashboard access."""

    NATIONAL_COORDINATOR = "national-coordinator"
    STATE_COORDINATOR = "state-coordinator"
    LGA_COORDINATOR = "lga-coordinator"
    WARD_COORDINATOR = "ward-coordinator"

    @property
    def level(self) -> GeoLevel:
        return _DESIGNATION_LEVELS[self]

    @classmethod
    def parse(cls, raw: str | None) -> "Designation | None":
        """Accept "State Coordinator", "state-coordinator", "STATE COORDINATOR"."""
        return next((designation for designation in cls if names_match(raw, designation.value)), None)


_DESIGNATION_LEVELS = {
    Designation.NATIONAL_COORDINATOR: GeoLevel.NATIONAL,
    Designation.STATE_COORDINATOR: GeoLevel.STATE,
    Designation.LGA_COORDINATOR: GeoLevel.LGA,
    Designation.WARD_COORDINATOR: GeoLevel.WARD,
}


class CallerIdentity(BaseModel):
    """Identity attached to each request by the auth service."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    user_id: str = Field(validation_alias=AliasChoices("user_id", "sub", "userId"))
    role: str | None = None
    designation: str | None = None
    assigned_state: str | None = Field(
        default=None, validation_alias=AliasChoices("assigned_state", "assignedState")
    )
    assigned_lga: str | None = Field(
        default=None, validation_alias=AliasChoices("assigned_lga", "assignedLGA")
    )
    assigned_ward: str | None = Field(
        default=None, validation_alias=AliasChoices("assigned_ward", "assignedWard")
    )


class AccessScope(BaseModel):
    """The subtree one caller may see, derived once per request."""

    model_config = ConfigDict(frozen=True)

    level: GeoLevel
    path: LocationPath = Field(default_factory=LocationPath)
    user_id: str | None = None
    designation: str | None = None
    role: str | None = None

    @property
    def keys(self) -> tuple[str, ...]:
        return self.path.keys

    @property
    def allowed_levels(self) -> list[GeoLevel]:
        return [level for level in GeoLevel if level.depth >= self.level.depth]

    @property
    def assigned_location(self) -> dict[str, Any] | None:
        """Pinned ancestors with ids usable in dashboard URLs; None for national."""
        if self.level is GeoLevel.NATIONAL:
            return None
        location: dict[str, Any] = {}
        for ancestor in self.path.ancestors()[1:]:
            prefix = ancestor.level.value
            location[f"{prefix}_id"] = ancestor.slug
            location[f"{prefix}_key"] = ancestor.keys[-1]
            location[f"{prefix}_name"] = ancestor.display_name
        return location

    def describe(self) -> dict[str, Any]:
        return {"level": self.level.value, "key": self.path.key}


def derive_scope(caller: CallerIdentity) -> AccessScope:
    """
    Work out what a caller may see from their role and designation.

    Raises:
        ScopeDeniedError: not a coordinator, or a coordinator whose assigned
            location is incomplete
    """
    if caller.role == ADMIN_ROLE:
        return AccessScope(level=GeoLevel.NATIONAL, user_id=caller.user_id, designation=caller.designation, role=caller.role)

    designation = Designation.parse(caller.designation)
    if designation is None:
        raise ScopeDeniedError(
            "Dashboard access requires a coordinator designation or admin privileges",
            requested="",
            reason=f"designation {caller.designation!r} has no dashboard scope",
            user_id=caller.user_id,
        )

    assigned = (caller.assigned_state, caller.assigned_lga, caller.assigned_ward)[: designation.level.depth]
    if not all(normalize(part) for part in assigned):
        raise ScopeDeniedError(
            f"Your {designation.value} account has no complete assigned location",
            assigned={"designation": designation.value, "assigned": list(assigned)},
            reason="incomplete assignment",
            user_id=caller.user_id,
        )

    return AccessScope(
        level=designation.level,
        path=resolve_path(assigned),
        user_id=caller.user_id,
        designation=designation.value,
        role=caller.role,
    )


def _deny(scope: AccessScope, requested: str, reason: str) -> ScopeDeniedError:
    assigned_name = scope.path.display_name
    return ScopeDeniedError(
        f"Access denied. You can only view data for your assigned {scope.level.value}: {assigned_name}",
        assigned=scope.describe(),
        requested=requested,
        reason=reason,
        user_id=scope.user_id,
    )


def check_access(scope: AccessScope, path: LocationPath) -> None:
    """
    Allow the request only inside the caller's subtree.

    Raises:
        ScopeDeniedError: the path is above the caller's level or in a
            different branch
    """
    if path.depth < scope.path.depth:
        raise _deny(scope, path.key, f"{path.level.value} view is above assigned {scope.level.value}")

    for depth, assigned_key in enumerate(scope.keys, start=1):
        if path.keys[depth - 1] != assigned_key:
            level = GeoLevel.from_depth(depth)
            raise _deny(scope, path.key, f"{level.value} mismatch")


def check_flat_id_access(scope: AccessScope, flat_id: str, level: GeoLevel) -> None:
    """
    Same decision as `check_access` for a flat identifier that has not been
    split yet. Any split of an in-scope identifier starts with the caller's
    own keys, so the slug prefix decides.

    Raises:
        ScopeDeniedError: no split of the identifier can fall inside the scope
    """
    if level.depth < scope.path.depth:
        raise _deny(scope, flat_id, f"{level.value} view is above assigned {scope.level.value}")
    if not scope.keys:
        return

    slug = normalize(flat_id)
    prefix = scope.path.slug
    if level.depth == scope.path.depth:
        allowed = slug == prefix
    else:
        allowed = slug.startswith(prefix + SEPARATOR)
    if not allowed:
        raise _deny(scope, slug, "identifier outside assigned location")


def authorize(scope: AccessScope, tree: AggregationTree, path: LocationPath) -> GeoNode:
    """
    Return the requested node if the caller may see it.

    Raises:
        ScopeDeniedError: outside the caller's subtree (decided before lookup)
        NotFoundError: allowed, but the tree has no such node
    """
    check_access(scope, path)
    node = tree.find(path.keys)
    if node is None:
        raise NotFoundError(f"No data found for {path.level.value}: {path.display_name}")
    return node
