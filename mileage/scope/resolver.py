"""
Scope Resolution

DESIGN DECISION: Which owners' rules, history and goals are visible is
decided in exactly one place. The resolved OwnerScope is passed as-is
into RuleStore, HistoryLedger and GoalTracker queries, so "what the UI
shows" and "what was aggregated" cannot drift apart.
"""

from typing import Iterable, Optional, Union

from pydantic import BaseModel, ConfigDict

from mileage.errors import NotFoundError
from mileage.models.mileage import PairedAccount, ViewMode


class OwnerScope(BaseModel):
    """Frozen set of owner identities visible to a request."""
    model_config = ConfigDict(frozen=True)

    owner_ids: frozenset[str]

    def __contains__(self, owner_id: object) -> bool:
        return owner_id in self.owner_ids

    def __iter__(self):
        return iter(sorted(self.owner_ids))

    def __len__(self) -> int:
        return len(self.owner_ids)

    def require(self, owner_id: str) -> None:
        """Raise NotFoundError if the owner is outside this scope."""
        if owner_id not in self.owner_ids:
            raise NotFoundError("owner", [owner_id])


OwnerFilter = Union[str, OwnerScope, Iterable[str]]


def owner_set(owner: OwnerFilter) -> frozenset[str]:
    """Normalize a single owner id, a scope, or an iterable of ids."""
    if isinstance(owner, OwnerScope):
        return owner.owner_ids
    if isinstance(owner, str):
        return frozenset({owner})
    return frozenset(owner)


class ScopeResolver:
    """Resolves the owner scope for a user and view selector."""

    def resolve(
        self,
        user_id: str,
        view_mode: ViewMode = ViewMode.BOTH,
        pairing: Optional[PairedAccount] = None,
    ) -> OwnerScope:
        """
        Single users always resolve to themselves. Paired users resolve
        to both partners for BOTH, or to the selected partner.
        """
        if pairing is None:
            return OwnerScope(owner_ids=frozenset({user_id}))

        if not pairing.includes(user_id):
            raise ValueError(f"User {user_id} is not part of this paired account")

        if view_mode == ViewMode.PARTNER_A:
            return OwnerScope(owner_ids=frozenset({pairing.partner_a_id}))
        if view_mode == ViewMode.PARTNER_B:
            return OwnerScope(owner_ids=frozenset({pairing.partner_b_id}))
        return OwnerScope(
            owner_ids=frozenset({pairing.partner_a_id, pairing.partner_b_id})
        )
