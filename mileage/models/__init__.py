"""
Data Models Package

This package contains all Pydantic models used by the mileage engine.
All data flowing through the engine must conform to these schemas.
"""

from mileage.models.mileage import (
    ActivityState,
    BestOpportunity,
    GoalAnalysis,
    GoalProgress,
    HelpfulPromotion,
    LinkableCard,
    MileageAnalysisResult,
    MileageGoal,
    MileageHistoryRecord,
    MileageOverview,
    MileageRule,
    MileageSummary,
    PairedAccount,
    ProgramBalance,
    ProgramBalanceSummary,
    Promotion,
    PromotionBenefitType,
    PromotionGoalMatch,
    PromotionMatch,
    PromotionRecommendation,
    PromotionType,
    PurchaseType,
    RateConfig,
    RuleConfig,
    RuleGroup,
    RuleValidationResult,
    ValidationIssue,
    ViabilityStatus,
    ViewMode,
    ensure_aware,
    utcnow,
)
from mileage.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Mileage models
    "ActivityState",
    "BestOpportunity",
    "GoalAnalysis",
    "GoalProgress",
    "HelpfulPromotion",
    "LinkableCard",
    "MileageAnalysisResult",
    "MileageGoal",
    "MileageHistoryRecord",
    "MileageOverview",
    "MileageRule",
    "MileageSummary",
    "PairedAccount",
    "ProgramBalance",
    "ProgramBalanceSummary",
    "Promotion",
    "PromotionBenefitType",
    "PromotionGoalMatch",
    "PromotionMatch",
    "PromotionRecommendation",
    "PromotionType",
    "PurchaseType",
    "RateConfig",
    "RuleConfig",
    "RuleGroup",
    "RuleValidationResult",
    "ValidationIssue",
    "ViabilityStatus",
    "ViewMode",
    "ensure_aware",
    "utcnow",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
