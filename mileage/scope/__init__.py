"""Owner scope resolution package."""

from mileage.scope.resolver import OwnerFilter, OwnerScope, ScopeResolver, owner_set

__all__ = ["OwnerFilter", "OwnerScope", "ScopeResolver", "owner_set"]
