"""
Tests for owner scope resolution.
"""

import pytest

from mileage.errors import NotFoundError
from mileage.models.mileage import PairedAccount, ViewMode
from mileage.scope import OwnerScope, ScopeResolver, owner_set


PAIR = PairedAccount(partner_a_id="alice", partner_b_id="bob")


class TestScopeResolver:
    """Tests for view-mode resolution."""

    def test_single_user_sees_self(self):
        scope = ScopeResolver().resolve("carol")
        assert scope.owner_ids == frozenset({"carol"})

    def test_single_user_ignores_partner_selector(self):
        scope = ScopeResolver().resolve("carol", ViewMode.PARTNER_B)
        assert scope.owner_ids == frozenset({"carol"})

    def test_paired_both(self):
        scope = ScopeResolver().resolve("bob", ViewMode.BOTH, PAIR)
        assert list(scope) == ["alice", "bob"]

    def test_paired_partner_a(self):
        scope = ScopeResolver().resolve("bob", ViewMode.PARTNER_A, PAIR)
        assert scope.owner_ids == frozenset({"alice"})

    def test_paired_partner_b(self):
        scope = ScopeResolver().resolve("alice", ViewMode.PARTNER_B, PAIR)
        assert scope.owner_ids == frozenset({"bob"})

    def test_non_member(self):
        with pytest.raises(ValueError):
            ScopeResolver().resolve("mallory", ViewMode.BOTH, PAIR)


class TestOwnerScope:
    """Tests for the resolved scope value."""

    def test_membership(self):
        scope = OwnerScope(owner_ids=frozenset({"alice", "bob"}))
        assert "alice" in scope
        assert "carol" not in scope
        assert len(scope) == 2

    def test_require(self):
        scope = OwnerScope(owner_ids=frozenset({"alice"}))
        scope.require("alice")
        with pytest.raises(NotFoundError):
            scope.require("bob")

    def test_owner_set_normalizes_inputs(self):
        scope = OwnerScope(owner_ids=frozenset({"alice"}))
        assert owner_set("alice") == frozenset({"alice"})
        assert owner_set(scope) == frozenset({"alice"})
        assert owner_set(["alice", "bob"]) == frozenset({"alice", "bob"})


class TestPairedAccount:
    """Tests for the pairing model."""

    def test_partners_must_differ(self):
        with pytest.raises(ValueError):
            PairedAccount(partner_a_id="alice", partner_b_id="alice")

    def test_includes(self):
        assert PAIR.includes("alice")
        assert not PAIR.includes("carol")
