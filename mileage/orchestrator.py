"""
Main Orchestrator for the Mileage Engine

This module ties the components together and defines the flows the
CRUD layer calls:
1. Rule setup (wizard → validate → store, toggle/delete a card as a unit)
2. Spend (scope check → active rule → accrue → recompute linked goals)
3. Goals (create with card link, delete)
4. Read side (rule groups, history, overview, viability analysis)

DESIGN DECISION: The orchestrator enforces the boundaries:
- No write for an owner outside the caller's scope
- Transient storage failures are retried here, and only here
- Domain errors are audited and raised to the caller unchanged
- Every action is audited
"""

from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Callable, Iterable, Optional, TypeVar
from uuid import UUID

import structlog
from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from mileage.accrual import AccrualCalculator, HistoryLedger
from mileage.analysis import ViabilityAnalyzer
from mileage.audit import AuditLogger, create_correlation_id
from mileage.config import Settings, get_settings
from mileage.errors import CardAlreadyLinkedError, MileageError
from mileage.goals import GoalTracker
from mileage.models.mileage import (
    LinkableCard,
    MileageAnalysisResult,
    MileageGoal,
    MileageHistoryRecord,
    MileageOverview,
    MileageRule,
    PairedAccount,
    ProgramBalance,
    Promotion,
    PurchaseType,
    RateConfig,
    RuleConfig,
    RuleGroup,
    ViewMode,
)
from mileage.programs import build_overview
from mileage.rules import RuleStore
from mileage.scope import OwnerScope, ScopeResolver
from mileage.services.currency import CurrencyNormalizer, RateSnapshotConverter
from mileage.services.storage import (
    InMemoryAuditStorage,
    InMemoryRecordStore,
    RecordStore,
    StorageConnectionError,
    StorageError,
)
from mileage.validation import RuleValidator


logger = structlog.get_logger(__name__)

T = TypeVar("T")


class MileageService:
    """
    Orchestrates every mileage flow over one record store.

    Components are built here so they share the store, the converter
    and the settings. Tests and callers can reach them through the
    read-only properties.
    """

    def __init__(
        self,
        store: RecordStore,
        audit_logger: Optional[AuditLogger] = None,
        converter: Optional[CurrencyNormalizer] = None,
        settings: Optional[Settings] = None,
        scope_resolver: Optional[ScopeResolver] = None,
    ):
        settings = settings or get_settings()
        app = settings.app
        storage = settings.storage

        self._audit_logger = audit_logger or AuditLogger()
        self._scopes = scope_resolver or ScopeResolver()
        self._lookback_months = app.velocity_lookback_months

        self._rules = RuleStore(
            store,
            RuleValidator(supported_currencies=app.supported_currencies_list),
        )
        calculator = AccrualCalculator(
            converter=converter or RateSnapshotConverter(),
            home_currency=app.home_currency,
        )
        self._ledger = HistoryLedger(store, self._rules, calculator)
        self._goals = GoalTracker(store, self._rules, self._ledger)
        self._analyzer = ViabilityAnalyzer(default_horizon_months=app.default_horizon_months)

        self._retrying = Retrying(
            stop=stop_after_attempt(storage.retry_attempts),
            wait=wait_exponential(
                multiplier=1,
                min=storage.retry_wait_min_seconds,
                max=storage.retry_wait_max_seconds,
            ),
            retry=retry_if_exception_type(StorageConnectionError),
            reraise=True,
        )

    # -------------------------------------------------------------------------
    # Components
    # -------------------------------------------------------------------------

    @property
    def rules(self) -> RuleStore:
        return self._rules

    @property
    def ledger(self) -> HistoryLedger:
        return self._ledger

    @property
    def goals(self) -> GoalTracker:
        return self._goals

    @property
    def analyzer(self) -> ViabilityAnalyzer:
        return self._analyzer

    # -------------------------------------------------------------------------
    # Plumbing
    # -------------------------------------------------------------------------

    def _call(
        self,
        operation: str,
        correlation_id: Optional[UUID],
        fn: Callable[..., T],
        *args,
        **kwargs,
    ) -> T:
        """Run a component call with storage retries; audit storage failures."""
        try:
            return self._retrying(fn, *args, **kwargs)
        except StorageError as e:
            self._audit_logger.log_storage_error(
                operation=operation,
                error_message=str(e),
                correlation_id=correlation_id,
            )
            raise

    def scope(
        self,
        user_id: str,
        view_mode: ViewMode = ViewMode.BOTH,
        pairing: Optional[PairedAccount] = None,
    ) -> OwnerScope:
        return self._scopes.resolve(user_id, view_mode, pairing)

    def _require_rules(self, scope: OwnerScope, rule_ids: list[UUID]) -> None:
        """Every known rule must belong to an owner in scope; unknown ids are left to the store."""
        for rule_id in rule_ids:
            rule = self._rules.get_rule(rule_id)
            if rule is not None:
                scope.require(rule.owner_id)

    # -------------------------------------------------------------------------
    # Rules
    # -------------------------------------------------------------------------

    def add_rule(
        self,
        user_id: str,
        owner_id: str,
        card_id: Optional[str],
        purchase_type: PurchaseType,
        config: RuleConfig,
        pairing: Optional[PairedAccount] = None,
        correlation_id: Optional[UUID] = None,
    ) -> MileageRule:
        """Create a single rule (the non-wizard path)."""
        correlation_id = correlation_id or create_correlation_id()
        self.scope(user_id, pairing=pairing).require(owner_id)

        existing_ids = {r.id for r in self._rules.rules_for_card(owner_id, card_id)}
        try:
            rule = self._call(
                "add_rule", correlation_id,
                self._rules.upsert_rule, owner_id, card_id, purchase_type, config,
            )
        except MileageError as e:
            self._audit_logger.log_rule_rejected(
                owner_id=owner_id,
                card_id=card_id,
                purchase_type=purchase_type.value,
                reason=str(e),
                correlation_id=correlation_id,
            )
            raise

        self._audit_logger.log_rule_saved(rule, rule.id in existing_ids, correlation_id)
        return rule

    def configure_card_rules(
        self,
        user_id: str,
        owner_id: str,
        card_id: Optional[str],
        bank_name: str,
        card_brand: str,
        domestic: RateConfig,
        international: Optional[RateConfig] = None,
        existing_miles: Decimal = Decimal("0"),
        pairing: Optional[PairedAccount] = None,
        correlation_id: Optional[UUID] = None,
    ) -> list[MileageRule]:
        """
        Run the rule wizard for a card.

        Raises:
            NotFoundError: owner outside the caller's scope
            DuplicateRuleError: the card already has an active rule of that type
            InvalidRuleError: a rate failed validation
        """
        correlation_id = correlation_id or create_correlation_id()
        self.scope(user_id, pairing=pairing).require(owner_id)

        existing_ids = {r.id for r in self._rules.rules_for_card(owner_id, card_id)}
        try:
            rules = self._call(
                "configure_card_rules", correlation_id,
                self._rules.configure_card,
                owner_id, card_id, bank_name, card_brand,
                domestic, international, existing_miles,
            )
        except MileageError as e:
            self._audit_logger.log_rule_rejected(
                owner_id=owner_id,
                card_id=card_id,
                purchase_type="card",
                reason=str(e),
                correlation_id=correlation_id,
            )
            raise

        for rule in rules:
            self._audit_logger.log_rule_saved(rule, rule.id in existing_ids, correlation_id)
        return rules

    def toggle_rules(
        self,
        user_id: str,
        rule_ids: Iterable[UUID],
        view_mode: ViewMode = ViewMode.BOTH,
        pairing: Optional[PairedAccount] = None,
        correlation_id: Optional[UUID] = None,
    ) -> list[MileageRule]:
        """
        Flip each rule; all or nothing.

        Raises:
            NotFoundError: a rule is unknown or owned outside the caller's scope
        """
        correlation_id = correlation_id or create_correlation_id()
        rule_ids = list(rule_ids)
        self._require_rules(self.scope(user_id, view_mode, pairing), rule_ids)
        rules = self._call("toggle_rules", correlation_id, self._rules.toggle_active, rule_ids)
        self._audit_logger.log_rules_toggled(rules, correlation_id)
        return rules

    def toggle_card_rules(
        self,
        user_id: str,
        owner_id: str,
        card_id: Optional[str],
        pairing: Optional[PairedAccount] = None,
        correlation_id: Optional[UUID] = None,
    ) -> list[MileageRule]:
        """Switch a card's domestic and international rules together."""
        correlation_id = correlation_id or create_correlation_id()
        self.scope(user_id, pairing=pairing).require(owner_id)
        rules = self._call(
            "toggle_card_rules", correlation_id,
            self._rules.toggle_card, owner_id, card_id,
        )
        self._audit_logger.log_rules_toggled(rules, correlation_id)
        return rules

    def delete_rules(
        self,
        user_id: str,
        rule_ids: Iterable[UUID],
        purge_history: bool = False,
        view_mode: ViewMode = ViewMode.BOTH,
        pairing: Optional[PairedAccount] = None,
        correlation_id: Optional[UUID] = None,
    ) -> int:
        """
        Hard delete rules; all or nothing.

        The ledger is kept unless purge_history is set, which is the
        explicit administrative cascade.

        Raises:
            NotFoundError: a rule is unknown or owned outside the caller's scope
        """
        correlation_id = correlation_id or create_correlation_id()
        rule_ids = list(rule_ids)
        self._require_rules(self.scope(user_id, view_mode, pairing), rule_ids)
        deleted = self._call("delete_rules", correlation_id, self._rules.delete_rules, rule_ids)
        if purge_history:
            self._call("purge_history", correlation_id, self._ledger.purge_for_rules, rule_ids)
        self._audit_logger.log_rules_deleted(rule_ids, correlation_id)
        return deleted

    def delete_card_rules(
        self,
        user_id: str,
        owner_id: str,
        card_id: Optional[str],
        pairing: Optional[PairedAccount] = None,
        purge_history: bool = False,
        correlation_id: Optional[UUID] = None,
    ) -> int:
        self.scope(user_id, pairing=pairing).require(owner_id)
        rule_ids = self._rules.card_rule_ids(owner_id, card_id)
        return self.delete_rules(
            user_id, rule_ids, purge_history,
            pairing=pairing, correlation_id=correlation_id,
        )

    def rule_groups(
        self,
        user_id: str,
        view_mode: ViewMode = ViewMode.BOTH,
        pairing: Optional[PairedAccount] = None,
    ) -> list[RuleGroup]:
        return self._rules.groups(self.scope(user_id, view_mode, pairing))

    # -------------------------------------------------------------------------
    # Spend
    # -------------------------------------------------------------------------

    def record_spend(
        self,
        user_id: str,
        owner_id: str,
        card_id: Optional[str],
        purchase_type: PurchaseType,
        amount_spent: Decimal,
        calculation_date: datetime,
        source_transaction_id: Optional[str] = None,
        view_mode: ViewMode = ViewMode.BOTH,
        pairing: Optional[PairedAccount] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Optional[MileageHistoryRecord]:
        """
        Accrue miles for a spend and move the card's goals.

        Returns None when the card has no active rule for the purchase
        type; that spend simply earns nothing.

        Raises:
            NotFoundError: owner outside the caller's scope
            InvalidRuleError: the matched rule cannot accrue
            ValueError: negative amount or unsupported currency
        """
        correlation_id = correlation_id or create_correlation_id()
        self.scope(user_id, view_mode, pairing).require(owner_id)

        rule = self._call(
            "find_active_rule", correlation_id,
            self._rules.find_active_rule, owner_id, card_id, purchase_type,
        )
        if rule is None:
            self._audit_logger.log_accrual_skipped(
                owner_id=owner_id,
                card_id=card_id,
                purchase_type=purchase_type.value,
                correlation_id=correlation_id,
            )
            return None

        try:
            record = self._call(
                "record_accrual", correlation_id,
                self._ledger.record_accrual,
                owner_id, card_id, rule.id, amount_spent,
                calculation_date, source_transaction_id,
            )
        except (MileageError, ValueError) as e:
            self._audit_logger.log_accrual_rejected(
                owner_id=owner_id,
                card_id=card_id,
                reason=str(e),
                correlation_id=correlation_id,
            )
            raise
        self._audit_logger.log_accrual_recorded(record, correlation_id)

        self._recompute_card_goals(owner_id, card_id, correlation_id)
        return record

    def _recompute_card_goals(
        self,
        owner_id: str,
        card_id: Optional[str],
        correlation_id: Optional[UUID],
    ) -> list[MileageGoal]:
        previous = {goal.id: goal.current_miles for goal in self._goals.list_goals(owner_id)}
        updated = self._call(
            "recompute_for_card", correlation_id,
            self._goals.recompute_for_card, owner_id, card_id,
        )
        for goal in updated:
            before = previous.get(goal.id, goal.current_miles)
            if goal.current_miles != before:
                self._audit_logger.log_goal_recomputed(goal, before, correlation_id)
        return updated

    def history(
        self,
        user_id: str,
        card_id: Optional[str] = None,
        view_mode: ViewMode = ViewMode.BOTH,
        pairing: Optional[PairedAccount] = None,
    ) -> list[MileageHistoryRecord]:
        return self._ledger.list_history(self.scope(user_id, view_mode, pairing), card_id)

    # -------------------------------------------------------------------------
    # Goals
    # -------------------------------------------------------------------------

    def create_goal(
        self,
        user_id: str,
        name: str,
        target_miles: Decimal,
        target_date: Optional[date] = None,
        source_card_id: Optional[str] = None,
        description: str = "",
        initial_miles: Decimal = Decimal("0"),
        correlation_id: Optional[UUID] = None,
    ) -> MileageGoal:
        """
        Create a goal for the user, optionally backed by one of their cards.

        Only the user's own cards can back their goals.

        Raises:
            CardAlreadyLinkedError: the card already backs an incomplete goal
            NotFoundError: the user has no rule for the card
        """
        correlation_id = correlation_id or create_correlation_id()
        try:
            goal = self._call(
                "create_goal", correlation_id,
                self._goals.create_goal,
                user_id, name, target_miles, target_date,
                source_card_id, description, initial_miles,
            )
        except CardAlreadyLinkedError as e:
            self._audit_logger.log_goal_link_rejected(
                owner_id=user_id,
                source_card_id=e.card_id,
                reason=str(e),
                correlation_id=correlation_id,
            )
            raise

        self._audit_logger.log_goal_created(goal, correlation_id)
        return goal

    def delete_goal(
        self,
        user_id: str,
        goal_id: UUID,
        view_mode: ViewMode = ViewMode.BOTH,
        pairing: Optional[PairedAccount] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        correlation_id = correlation_id or create_correlation_id()
        goal = self._goals.get_goal(goal_id)
        if goal is not None:
            self.scope(user_id, view_mode, pairing).require(goal.owner_id)
        self._call("delete_goal", correlation_id, self._goals.delete_goal, goal_id)
        self._audit_logger.log_goal_deleted(goal_id, correlation_id)

    def list_goals(
        self,
        user_id: str,
        view_mode: ViewMode = ViewMode.BOTH,
        pairing: Optional[PairedAccount] = None,
    ) -> list[MileageGoal]:
        return self._goals.list_goals(self.scope(user_id, view_mode, pairing))

    def linkable_cards(self, user_id: str) -> list[LinkableCard]:
        return self._goals.linkable_cards(user_id)

    # -------------------------------------------------------------------------
    # Analysis
    # -------------------------------------------------------------------------

    def goal_velocity(self, goal: MileageGoal, as_of: Optional[datetime] = None) -> Decimal:
        """
        Monthly velocity feeding a goal: its card's history when linked,
        otherwise everything its owner earned.
        """
        return self._ledger.monthly_velocity(
            goal.owner_id,
            goal.source_card_id,
            lookback_months=self._lookback_months,
            as_of=as_of,
        )

    def analyze_goals(
        self,
        user_id: str,
        promotions: Iterable[Promotion],
        view_mode: ViewMode = ViewMode.BOTH,
        pairing: Optional[PairedAccount] = None,
        today: Optional[date] = None,
        correlation_id: Optional[UUID] = None,
    ) -> MileageAnalysisResult:
        """Viability of every goal in scope against the promotion catalog."""
        correlation_id = correlation_id or create_correlation_id()
        as_of = None
        if today is not None:
            as_of = datetime.combine(today, time.max, tzinfo=timezone.utc)

        goals = self.list_goals(user_id, view_mode, pairing)
        velocities = {goal.id: self.goal_velocity(goal, as_of) for goal in goals}
        result = self._analyzer.analyze_goals(goals, velocities, promotions, today)

        self._audit_logger.log_analysis(
            goal_count=len(result.goal_analyses),
            trips_ready=result.summary.trips_ready,
            trips_soon=result.summary.trips_soon,
            correlation_id=correlation_id,
        )
        return result

    def overview(
        self,
        user_id: str,
        balances: Iterable[ProgramBalance] = (),
        view_mode: ViewMode = ViewMode.BOTH,
        pairing: Optional[PairedAccount] = None,
    ) -> MileageOverview:
        """Rule-derived miles and connected-program balances, side by side."""
        scope = self.scope(user_id, view_mode, pairing)
        return build_overview(
            self._rules.list_rules(scope),
            self._ledger.sum_miles_since(scope),
            balances,
            scope,
        )


def create_app_components(
    settings: Optional[Settings] = None,
) -> tuple[MileageService, InMemoryRecordStore, InMemoryAuditStorage]:
    """
    Factory function to create all engine components.

    Uses the in-memory store; the surrounding application passes its
    own RecordStore to MileageService instead.

    Returns:
        (service, record_store, audit_storage)
    """
    settings = settings or get_settings()
    store = InMemoryRecordStore()
    audit_storage = InMemoryAuditStorage()
    service = MileageService(
        store=store,
        audit_logger=AuditLogger(audit_storage),
        settings=settings,
    )
    logger.info("mileage_service_created", environment=settings.app.app_environment)
    return service, store, audit_storage
