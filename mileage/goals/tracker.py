"""
Goal Tracker

Mileage goals and their progress.

CRITICAL: Progress is always recomputed from source, never incremented:

    current_miles = initial_miles + sum(ledger history for owner/card)

where initial_miles is the one-time snapshot of the card's existing
miles taken when the goal was linked. Running recompute_progress any
number of times gives the same value, and a failed recompute leaves
the previous value intact because the goal is written once, at the end.

A card backs at most one incomplete goal, so its existing miles are
never counted twice. Completing or deleting the goal releases the card.
"""

from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

import structlog

from mileage.accrual import HistoryLedger
from mileage.errors import CardAlreadyLinkedError, NotFoundError
from mileage.models.mileage import GoalProgress, LinkableCard, MileageGoal, utcnow
from mileage.rules import RuleStore, group_rules
from mileage.scope import OwnerFilter, owner_set
from mileage.services.storage import GOALS_COLLECTION, RecordStore


logger = structlog.get_logger(__name__)


class GoalTracker:
    """Creates goals and keeps their progress in step with the ledger."""

    def __init__(
        self,
        store: RecordStore,
        rule_store: RuleStore,
        ledger: HistoryLedger,
    ):
        self._store = store
        self._rules = rule_store
        self._ledger = ledger

    @staticmethod
    def _from_record(record: dict) -> MileageGoal:
        return MileageGoal.model_validate(record)

    def _save(self, goal: MileageGoal) -> None:
        self._store.put(GOALS_COLLECTION, str(goal.id), goal.model_dump(mode="json"))

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get_goal(self, goal_id: UUID) -> Optional[MileageGoal]:
        record = self._store.get(GOALS_COLLECTION, str(goal_id))
        return self._from_record(record) if record else None

    def list_goals(self, owner: OwnerFilter, include_completed: bool = True) -> list[MileageGoal]:
        """Goals in scope, oldest first."""
        goals = [
            self._from_record(r)
            for r in self._store.query(GOALS_COLLECTION, owner_id=owner_set(owner))
        ]
        if not include_completed:
            goals = [goal for goal in goals if not goal.is_completed]
        goals.sort(key=lambda g: g.created_at)
        return goals

    def _goals_for_card(self, owner_id: str, card_id: str) -> list[MileageGoal]:
        records = self._store.query(
            GOALS_COLLECTION,
            owner_id=owner_id,
            source_card_id=card_id,
        )
        return [self._from_record(r) for r in records]

    def _blocking_goal(self, owner_id: str, card_id: str) -> Optional[MileageGoal]:
        for goal in self._goals_for_card(owner_id, card_id):
            if not goal.is_completed:
                return goal
        return None

    def _card_snapshot(self, owner_id: str, card_id: str) -> Decimal:
        rules = self._rules.rules_for_card(owner_id, card_id)
        if not rules:
            raise NotFoundError("card rule", [card_id])
        return sum((rule.existing_miles for rule in rules), Decimal("0"))

    def _current_miles(self, goal: MileageGoal) -> Decimal:
        if goal.source_card_id is None:
            return goal.initial_miles
        accrued = self._ledger.sum_miles_since(goal.owner_id, goal.source_card_id)
        return goal.initial_miles + accrued

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def create_goal(
        self,
        owner_id: str,
        name: str,
        target_miles: Decimal,
        target_date: Optional[date] = None,
        source_card_id: Optional[str] = None,
        description: str = "",
        initial_miles: Decimal = Decimal("0"),
    ) -> MileageGoal:
        """
        Create a goal, optionally backed by a card.

        A card-backed goal snapshots the card's existing miles and starts
        from that plus every ledger entry already recorded for the card.
        Without a card, initial_miles is taken as a manual starting balance.

        Raises:
            CardAlreadyLinkedError: the card backs another incomplete goal
            NotFoundError: the owner has no rule for the card
        """
        if source_card_id is not None:
            blocking = self._blocking_goal(owner_id, source_card_id)
            if blocking is not None:
                raise CardAlreadyLinkedError(source_card_id, blocking.name)
            initial_miles = self._card_snapshot(owner_id, source_card_id)

        goal = MileageGoal(
            owner_id=owner_id,
            name=name,
            description=description,
            target_miles=target_miles,
            initial_miles=initial_miles,
            current_miles=initial_miles,
            target_date=target_date,
            source_card_id=source_card_id,
        )
        goal = goal.model_copy(update={"current_miles": self._current_miles(goal)})
        self._save(goal)
        logger.info(
            "goal_created",
            goal_id=str(goal.id),
            owner_id=owner_id,
            source_card_id=source_card_id,
            initial_miles=str(goal.initial_miles),
            current_miles=str(goal.current_miles),
        )
        return goal

    def recompute_progress(self, goal_id: UUID) -> MileageGoal:
        """
        Recompute current_miles from the snapshot and the ledger.

        Raises:
            NotFoundError: unknown goal
        """
        goal = self.get_goal(goal_id)
        if goal is None:
            raise NotFoundError("goal", [goal_id])

        current = self._current_miles(goal)
        if current == goal.current_miles:
            return goal

        updated = goal.model_copy(update={"current_miles": current, "updated_at": utcnow()})
        self._save(updated)
        logger.info(
            "goal_progress_recomputed",
            goal_id=str(goal.id),
            previous_miles=str(goal.current_miles),
            current_miles=str(current),
            completed=updated.is_completed,
        )
        return updated

    def recompute_for_card(self, owner_id: str, card_id: Optional[str]) -> list[MileageGoal]:
        """Recompute every goal backed by the card."""
        if card_id is None:
            return []
        return [
            self.recompute_progress(goal.id)
            for goal in self._goals_for_card(owner_id, card_id)
        ]

    def delete_goal(self, goal_id: UUID) -> None:
        """
        Hard delete. A card it was backing becomes linkable again.

        Raises:
            NotFoundError: unknown goal
        """
        if self.get_goal(goal_id) is None:
            raise NotFoundError("goal", [goal_id])
        self._store.delete_by_ids(GOALS_COLLECTION, [str(goal_id)])
        logger.info("goal_deleted", goal_id=str(goal_id))

    # -------------------------------------------------------------------------
    # Derived views
    # -------------------------------------------------------------------------

    @staticmethod
    def progress(goal: MileageGoal) -> GoalProgress:
        ratio = min(goal.current_miles / goal.target_miles, Decimal("1"))
        return GoalProgress(
            goal_id=goal.id,
            current_miles=goal.current_miles,
            target_miles=goal.target_miles,
            remaining_miles=max(Decimal("0"), goal.target_miles - goal.current_miles),
            percent_complete=ratio * 100,
            is_completed=goal.is_completed,
        )

    def linkable_cards(self, owner_id: str) -> list[LinkableCard]:
        """
        Cards the owner can back a new goal with.

        Only the owner's own active cards qualify, and a card already
        backing an incomplete goal is left out.
        """
        cards = []
        for group in group_rules(self._rules.list_rules(owner_id, active_only=True)):
            if group.card_id is None:
                continue
            if self._blocking_goal(owner_id, group.card_id) is not None:
                continue
            accrued = self._ledger.sum_miles_since(owner_id, group.card_id)
            cards.append(LinkableCard(
                card_id=group.card_id,
                rule_id=group.rule_ids[0],
                bank_name=group.bank_name,
                card_brand=group.card_brand,
                available_miles=group.total_existing_miles + accrued,
            ))
        return cards
