"""
Core Data Models for the Mileage Engine

These models define the strict schemas for all data flowing through the engine.
They are designed to:
1. Enforce type safety at runtime
2. Keep every mile amount in Decimal (no float drift in the ledger)
3. Be serializable for storage and logging
4. Make the read-side outputs (groups, analyses) explicit types

DESIGN DECISION: Wizard input models (RuleConfig, RateConfig) are loose.
Rate sanity is checked by the rule validator so the user gets a list of
issues instead of a single pydantic error.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
    model_validator,
)


def utcnow() -> datetime:
    """Timezone-aware current time used by every default timestamp."""
    return datetime.now(timezone.utc)


def ensure_aware(value: datetime) -> datetime:
    """Treat naive datetimes as UTC so ledger comparisons never mix the two."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class PurchaseType(str, Enum):
    """
    Purchase classification of a card rule.

    Each type carries its own currency and earning rate.
    """
    DOMESTIC = "domestic"
    INTERNATIONAL = "international"


class ActivityState(str, Enum):
    """Activity of a card's rule group."""
    ALL = "all"
    SOME = "some"
    NONE = "none"


class ViewMode(str, Enum):
    """
    Which partner's data a paired account is looking at.

    Single users always see only their own data, whatever the mode.
    """
    BOTH = "both"
    PARTNER_A = "user1"
    PARTNER_B = "user2"


class ViabilityStatus(str, Enum):
    """Classification of a mileage goal."""
    ACHIEVABLE = "achievable"
    PARTIALLY_ACHIEVABLE = "partially_achievable"
    NOT_ACHIEVABLE = "not_achievable"


class PromotionType(str, Enum):
    """Kinds of third-party airline promotions in the catalog."""
    TRANSFER_BONUS = "transfer_bonus"
    BUY_MILES = "buy_miles"
    ROUTE_DISCOUNT = "route_discount"
    ROUTE_PROMOTION = "route_promotion"
    DOUBLE_POINTS = "double_points"
    OTHER = "other"


class PromotionBenefitType(str, Enum):
    """How a promotion helps a particular goal."""
    BONUS_PURCHASE = "bonus_purchase"
    ROUTE_DISCOUNT = "route_discount"
    ACCELERATES_EARNING = "accelerates_earning"


# =============================================================================
# RULE MODELS
# =============================================================================

class RateConfig(BaseModel):
    """
    Earning rate for one purchase type.

    "miles_per_unit miles for every unit_threshold spent in currency".
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    currency: str = Field(
        ...,
        min_length=3,
        max_length=3,
        description="ISO currency code the rate is expressed in"
    )
    miles_per_unit: Decimal = Field(
        ...,
        description="Miles earned per threshold unit"
    )
    unit_threshold: Decimal = Field(
        ...,
        description="Amount (in currency) that earns miles_per_unit"
    )

    @field_validator('currency')
    @classmethod
    def uppercase_currency(cls, v: str) -> str:
        return v.upper()


class RuleConfig(BaseModel):
    """
    Configuration captured by the rule wizard for a single rule.

    Step 1 picks the earning model (bank/card brand), step 2 the rate.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    bank_name: str = Field(
        default="",
        max_length=100,
        description="Issuing bank"
    )
    card_brand: str = Field(
        default="",
        max_length=100,
        description="Card brand / earning program"
    )
    currency: str = Field(
        ...,
        min_length=3,
        max_length=3,
        description="Currency the rule earns in"
    )
    miles_per_unit: Decimal
    unit_threshold: Decimal
    existing_miles: Decimal = Field(
        default=Decimal("0"),
        description="Miles already held on the card (domestic rule only)"
    )
    is_active: bool = True

    @field_validator('currency')
    @classmethod
    def uppercase_currency(cls, v: str) -> str:
        return v.upper()

    @property
    def rate(self) -> RateConfig:
        return RateConfig(
            currency=self.currency,
            miles_per_unit=self.miles_per_unit,
            unit_threshold=self.unit_threshold,
        )


class MileageRule(BaseModel):
    """
    One earning policy for a card and purchase type.

    INVARIANT: at most one rule per (owner_id, card_id, purchase_type).
    existing_miles is a one-time snapshot and lives on the domestic rule.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(
        default_factory=uuid4,
        description="Unique rule ID"
    )
    owner_id: str = Field(
        ...,
        min_length=1,
        description="User identity owning the rule"
    )
    card_id: Optional[str] = Field(
        default=None,
        description="Card the rule belongs to"
    )
    bank_name: str = ""
    card_brand: str = ""
    purchase_type: PurchaseType = PurchaseType.DOMESTIC
    currency: str = Field(
        ...,
        min_length=3,
        max_length=3
    )
    miles_per_unit: Decimal
    unit_threshold: Decimal
    existing_miles: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        description="Miles already held when the rule was created"
    )
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator('currency')
    @classmethod
    def uppercase_currency(cls, v: str) -> str:
        return v.upper()

    @property
    def rate(self) -> RateConfig:
        return RateConfig(
            currency=self.currency,
            miles_per_unit=self.miles_per_unit,
            unit_threshold=self.unit_threshold,
        )


class RuleGroup(BaseModel):
    """
    A card's domestic + international rules viewed as one unit.

    Produced by the rule grouper on every read; never persisted.
    """

    card_id: Optional[str]
    owner_id: str
    bank_name: str = ""
    card_brand: str = ""
    rule_ids: list[UUID] = Field(default_factory=list)
    purchase_types: list[PurchaseType] = Field(default_factory=list)
    activity: ActivityState
    total_existing_miles: Decimal = Decimal("0")
    rates: dict[PurchaseType, RateConfig] = Field(default_factory=dict)

    @property
    def all_active(self) -> bool:
        return self.activity == ActivityState.ALL

    @property
    def any_active(self) -> bool:
        return self.activity != ActivityState.NONE


# =============================================================================
# LEDGER MODEL
# =============================================================================

class MileageHistoryRecord(BaseModel):
    """
    One accrual event.

    CRITICAL: Records are immutable. miles_earned is fixed at creation
    and never recomputed, even if the rule changes later.
    """
    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    owner_id: str = Field(..., min_length=1)
    card_id: Optional[str] = None
    rule_id: UUID
    amount_spent: Decimal = Field(
        ...,
        ge=0,
        description="Spend in home currency"
    )
    miles_earned: Decimal = Field(..., ge=0)
    calculation_date: datetime = Field(
        ...,
        description="When the spend happened (orders the ledger)"
    )
    source_transaction_id: Optional[str] = None
    created_at: datetime = Field(
        default_factory=utcnow,
        description="When the record was appended"
    )

    @field_validator('calculation_date', 'created_at')
    @classmethod
    def normalize_timezone(cls, v: datetime) -> datetime:
        return ensure_aware(v)


# =============================================================================
# GOAL MODELS
# =============================================================================

class MileageGoal(BaseModel):
    """
    A user's mileage target.

    current_miles = initial_miles + ledger sum for the source card.
    initial_miles is captured once, at creation.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    owner_id: str = Field(..., min_length=1)
    name: str = Field(
        ...,
        min_length=1,
        max_length=200
    )
    description: str = Field(default="", max_length=1000)
    target_miles: Decimal = Field(..., gt=0)
    current_miles: Decimal = Field(default=Decimal("0"), ge=0)
    initial_miles: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        description="One-time snapshot of the source card's existing miles"
    )
    target_date: Optional[date] = None
    source_card_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @computed_field
    @property
    def is_completed(self) -> bool:
        return self.current_miles >= self.target_miles


class GoalProgress(BaseModel):
    """Progress figures shown next to a goal."""

    goal_id: UUID
    current_miles: Decimal
    target_miles: Decimal
    remaining_miles: Decimal
    percent_complete: Decimal
    is_completed: bool


class LinkableCard(BaseModel):
    """A card that may back a new goal, with the miles it would bring."""

    card_id: str
    rule_id: UUID
    bank_name: str = ""
    card_brand: str = ""
    available_miles: Decimal


# =============================================================================
# PROMOTIONS & PROGRAM BALANCES (external, read-only)
# =============================================================================

class Promotion(BaseModel):
    """
    Third-party airline offer from the promotion catalog.

    Refreshed by an external ingestion process; the engine only reads it.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    airline: str = Field(..., min_length=1)
    title: str = ""
    destination: Optional[str] = None
    route_from: Optional[str] = None
    miles_required: Optional[Decimal] = Field(default=None, ge=0)
    benefit_description: str = ""
    promotion_type: PromotionType = PromotionType.OTHER
    bonus_percentage: Optional[Decimal] = Field(default=None, ge=0)
    discount_percentage: Optional[Decimal] = Field(default=None, ge=0, le=100)
    valid_from: date
    valid_to: date
    is_active: bool = True

    @model_validator(mode='after')
    def validate_window(self) -> 'Promotion':
        if self.valid_to < self.valid_from:
            raise ValueError("Promotion validity cannot end before it starts")
        return self

    def is_valid_on(self, day: date) -> bool:
        """Active and not yet expired on the given day."""
        return self.is_active and self.valid_to >= day


class ProgramBalance(BaseModel):
    """
    Balance reported by a connected loyalty program.

    CRITICAL: This is a separate pool. It already includes transferred
    and bonus miles that rule accrual cannot see, so it is never added
    to rule-derived miles.
    """

    program_id: str
    owner_id: str
    program_name: str = ""
    balance_miles: Decimal = Field(default=Decimal("0"), ge=0)
    balance_value: Optional[Decimal] = Field(default=None, ge=0)


class PairedAccount(BaseModel):
    """Paired-account relationship supplied by the identity provider."""
    model_config = ConfigDict(frozen=True)

    partner_a_id: str = Field(..., min_length=1)
    partner_b_id: str = Field(..., min_length=1)

    @model_validator(mode='after')
    def validate_distinct(self) -> 'PairedAccount':
        if self.partner_a_id == self.partner_b_id:
            raise ValueError("A paired account needs two different users")
        return self

    def includes(self, user_id: str) -> bool:
        return user_id in (self.partner_a_id, self.partner_b_id)


# =============================================================================
# ANALYSIS MODELS (read-side outputs)
# =============================================================================

class HelpfulPromotion(BaseModel):
    """A promotion that lowers the cost of, or speeds up, a goal."""

    promotion_id: str
    promotion_title: str
    airline: str
    benefit_type: PromotionBenefitType
    benefit_description: str
    adjusted_miles_needed: Optional[Decimal] = None
    savings_percent: Optional[Decimal] = None
    savings_miles: Optional[Decimal] = None


class PromotionRecommendation(BaseModel):
    """The single promotion suggested for a goal."""

    promotion_id: str
    airline: str
    title: str = ""
    destination: Optional[str] = None
    miles_required: Decimal
    valid_to: date
    benefit_description: str = ""
    months_to_reach: Optional[int] = Field(
        default=None,
        description="Months until current trajectory covers miles_required"
    )


class GoalAnalysis(BaseModel):
    """
    Viability judgment for one goal.

    Zero velocity, zero remaining miles and "no promotion" are all
    represented here as values, never as errors.
    """

    goal_id: UUID
    goal_name: str
    target_miles: Decimal
    current_miles: Decimal
    missing_miles: Decimal
    percent_complete: Decimal
    viability: ViabilityStatus
    viability_message: str
    monthly_velocity: Decimal = Decimal("0")
    estimated_months_to_achieve: Optional[int] = None
    projected_completion_date: Optional[date] = None
    best_promotion: Optional[PromotionRecommendation] = None
    helpful_promotions: list[HelpfulPromotion] = Field(default_factory=list)


class PromotionGoalMatch(BaseModel):
    """Goals a single promotion helps (for catalog badges)."""

    promotion_id: str
    goal_ids: list[UUID] = Field(default_factory=list)
    goal_names: list[str] = Field(default_factory=list)


class PromotionMatch(BaseModel):
    """Destination match between a promotion and a goal."""

    promotion: Promotion
    goal_id: UUID
    match_score: int = Field(..., ge=0, le=100)
    match_reason: str


class BestOpportunity(BaseModel):
    goal_name: str
    promotion_title: str
    savings_miles: Decimal
    savings_description: str


class MileageSummary(BaseModel):
    """Headline figures across every analysed goal."""

    trips_ready: int = 0
    trips_soon: int = 0
    promotions_helping_goals: int = 0
    best_opportunity: Optional[BestOpportunity] = None


class MileageAnalysisResult(BaseModel):
    goal_analyses: list[GoalAnalysis] = Field(default_factory=list)
    promotion_matches: dict[str, PromotionGoalMatch] = Field(default_factory=dict)
    summary: MileageSummary = Field(default_factory=MileageSummary)


class ProgramBalanceSummary(BaseModel):
    total_miles: Decimal = Decimal("0")
    total_value: Decimal = Decimal("0")
    program_count: int = 0


class MileageOverview(BaseModel):
    """
    Dashboard totals.

    The two pools are reported side by side. There is deliberately no
    field that adds them.
    """

    rule_miles: Decimal = Field(
        default=Decimal("0"),
        description="Existing-miles snapshots plus ledger accrual"
    )
    existing_miles: Decimal = Decimal("0")
    accrued_miles: Decimal = Decimal("0")
    programs: ProgramBalanceSummary = Field(default_factory=ProgramBalanceSummary)


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_value', 'suspicious_value')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = None


class RuleValidationResult(BaseModel):
    """
    Result of the two-stage rule validation.

    Stage 1: Schema validation (values, codes)
    Stage 2: Semantic validation (existing miles placement, sanity)
    """

    validated_at: datetime = Field(default_factory=utcnow)
    schema_valid: bool
    semantic_valid: bool
    is_valid: bool
    issues: list[ValidationIssue] = Field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")

    @property
    def warnings(self) -> list[ValidationIssue]:
        return [issue for issue in self.issues if issue.severity == "warning"]
