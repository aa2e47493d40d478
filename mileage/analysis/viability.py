"""
Viability Analysis

Combines a goal, its accrual velocity and the promotion catalog into a
user-facing judgment:

- achievable: current_miles >= target_miles. Nothing left to optimize,
  so no time estimate and no promotion suggestion.
- partially_achievable: velocity > 0 and today + ceil(remaining / velocity)
  months lands on or before the goal's target date (or the default
  horizon when the goal has none).
- not_achievable: everything else, including zero velocity.

Zero velocity means "no projection possible", never infinity: the
estimate is simply absent.

The analyzer is pure. Callers supply velocity and "today", so the same
inputs always give the same analysis.
"""

from datetime import date
from decimal import ROUND_CEILING, ROUND_FLOOR, Decimal
from typing import Iterable, Mapping, Optional, Union
from uuid import UUID

import structlog

from mileage.analysis.matching import score_destination
from mileage.config import get_settings
from mileage.goals import GoalTracker
from mileage.models.mileage import (
    BestOpportunity,
    GoalAnalysis,
    HelpfulPromotion,
    MileageAnalysisResult,
    MileageGoal,
    MileageSummary,
    Promotion,
    PromotionBenefitType,
    PromotionGoalMatch,
    PromotionRecommendation,
    PromotionType,
    ViabilityStatus,
)
from mileage.periods import add_months


logger = structlog.get_logger(__name__)

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")

_BONUS_TYPES = (PromotionType.TRANSFER_BONUS, PromotionType.BUY_MILES)
_ROUTE_TYPES = (PromotionType.ROUTE_DISCOUNT, PromotionType.ROUTE_PROMOTION)


def months_to_cover(miles: Decimal, velocity: Decimal) -> Optional[int]:
    """Whole months needed to earn `miles` at `velocity` per month."""
    if miles <= 0:
        return 0
    if velocity <= 0:
        return None
    return int((miles / velocity).to_integral_value(rounding=ROUND_CEILING))


def _floor(value: Decimal) -> Decimal:
    return value.to_integral_value(rounding=ROUND_FLOOR)


def _format_miles(value: Decimal) -> str:
    return f"{int(_floor(value)):,}"


class ViabilityAnalyzer:
    """Classifies goals and finds the promotions that help them."""

    def __init__(self, default_horizon_months: Optional[int] = None):
        self._horizon = default_horizon_months or get_settings().app.default_horizon_months

    # -------------------------------------------------------------------------
    # Promotions
    # -------------------------------------------------------------------------

    def best_promotion(
        self,
        goal: MileageGoal,
        velocity: Decimal,
        promotions: Iterable[Promotion],
        today: date,
    ) -> Optional[PromotionRecommendation]:
        """
        Cheapest still-valid promotion within the goal's scale.

        Lowest miles_required wins, which is also the one the current
        trajectory reaches first; ties go to the promotion that expires
        soonest.
        """
        candidates = [
            promotion
            for promotion in promotions
            if promotion.is_valid_on(today)
            and promotion.miles_required is not None
            and promotion.miles_required <= goal.target_miles
        ]
        if not candidates:
            return None

        best = min(candidates, key=lambda p: (p.miles_required, p.valid_to))
        return PromotionRecommendation(
            promotion_id=best.id,
            airline=best.airline,
            title=best.title,
            destination=best.destination,
            miles_required=best.miles_required,
            valid_to=best.valid_to,
            benefit_description=best.benefit_description,
            months_to_reach=months_to_cover(best.miles_required - goal.current_miles, velocity),
        )

    def helpful_promotions(
        self,
        goal: MileageGoal,
        promotions: Iterable[Promotion],
        today: date,
    ) -> list[HelpfulPromotion]:
        """
        Promotions that make the goal cheaper or faster, largest saving first.

        - transfer/buy-miles bonuses shrink the miles still to be earned
        - route discounts count when the route matches the goal's destination
        - double-points offers speed up future earning
        """
        missing = max(_ZERO, goal.target_miles - goal.current_miles)
        helpful = []

        for promotion in promotions:
            if not promotion.is_valid_on(today):
                continue

            if promotion.promotion_type in _BONUS_TYPES and promotion.bonus_percentage:
                effective = missing / (1 + promotion.bonus_percentage / _HUNDRED)
                savings = _floor(missing - effective)
                helpful.append(HelpfulPromotion(
                    promotion_id=promotion.id,
                    promotion_title=promotion.title,
                    airline=promotion.airline,
                    benefit_type=PromotionBenefitType.BONUS_PURCHASE,
                    benefit_description=(
                        f"Save {_format_miles(savings)} miles with a "
                        f"{promotion.bonus_percentage}% bonus"
                    ),
                    adjusted_miles_needed=_floor(effective),
                    savings_percent=promotion.bonus_percentage,
                    savings_miles=savings,
                ))

            elif (
                promotion.promotion_type in _ROUTE_TYPES
                and promotion.miles_required
                and score_destination(promotion, goal) is not None
            ):
                discount = promotion.discount_percentage or _ZERO
                route = promotion.destination
                if promotion.route_from:
                    route = f"{promotion.route_from} -> {promotion.destination}"
                description = (
                    f"{discount}% off flights to {promotion.destination}"
                    if discount > 0
                    else f"Promotional fare on {route}"
                )
                helpful.append(HelpfulPromotion(
                    promotion_id=promotion.id,
                    promotion_title=promotion.title,
                    airline=promotion.airline,
                    benefit_type=PromotionBenefitType.ROUTE_DISCOUNT,
                    benefit_description=description,
                    adjusted_miles_needed=_floor(promotion.miles_required * (1 - discount / _HUNDRED)),
                    savings_percent=discount,
                    savings_miles=(
                        _floor(promotion.miles_required * discount / _HUNDRED)
                        if discount > 0 else None
                    ),
                ))

            elif promotion.promotion_type == PromotionType.DOUBLE_POINTS and promotion.bonus_percentage:
                helpful.append(HelpfulPromotion(
                    promotion_id=promotion.id,
                    promotion_title=promotion.title,
                    airline=promotion.airline,
                    benefit_type=PromotionBenefitType.ACCELERATES_EARNING,
                    benefit_description=f"Earn {promotion.bonus_percentage}% more miles on purchases",
                    savings_percent=promotion.bonus_percentage,
                ))

        helpful.sort(key=lambda h: h.savings_miles or _ZERO, reverse=True)
        return helpful

    # -------------------------------------------------------------------------
    # Classification
    # -------------------------------------------------------------------------

    def _deadline(self, goal: MileageGoal, today: date) -> date:
        return goal.target_date or add_months(today, self._horizon)

    @staticmethod
    def _message(
        viability: ViabilityStatus,
        missing: Decimal,
        months: Optional[int],
    ) -> str:
        if viability == ViabilityStatus.ACHIEVABLE:
            return "You already have enough miles for this goal."
        if viability == ViabilityStatus.PARTIALLY_ACHIEVABLE:
            return (
                f"{_format_miles(missing)} miles to go, about {months} "
                f"month{'s' if months != 1 else ''} at your current pace."
            )
        if months is None:
            return (
                f"{_format_miles(missing)} miles to go and no recent earning "
                "to project from."
            )
        return (
            f"{_format_miles(missing)} miles to go; at your current pace "
            f"that takes {months} months, past the goal's deadline."
        )

    def analyze(
        self,
        goal: MileageGoal,
        velocity: Decimal,
        promotions: Iterable[Promotion],
        today: Optional[date] = None,
    ) -> GoalAnalysis:
        today = today or date.today()
        promotions = list(promotions)
        progress = GoalTracker.progress(goal)
        missing = progress.remaining_miles

        base = {
            "goal_id": goal.id,
            "goal_name": goal.name,
            "target_miles": goal.target_miles,
            "current_miles": goal.current_miles,
            "missing_miles": missing,
            "percent_complete": progress.percent_complete,
            "monthly_velocity": velocity,
        }

        if missing <= 0:
            return GoalAnalysis(
                viability=ViabilityStatus.ACHIEVABLE,
                viability_message=self._message(ViabilityStatus.ACHIEVABLE, missing, None),
                **base,
            )

        months = months_to_cover(missing, velocity)
        projected = add_months(today, months) if months is not None else None

        if projected is not None and projected <= self._deadline(goal, today):
            viability = ViabilityStatus.PARTIALLY_ACHIEVABLE
        else:
            viability = ViabilityStatus.NOT_ACHIEVABLE

        return GoalAnalysis(
            viability=viability,
            viability_message=self._message(viability, missing, months),
            estimated_months_to_achieve=months,
            projected_completion_date=projected,
            best_promotion=self.best_promotion(goal, velocity, promotions, today),
            helpful_promotions=self.helpful_promotions(goal, promotions, today),
            **base,
        )

    def analyze_goals(
        self,
        goals: Iterable[MileageGoal],
        velocities: Union[Mapping[UUID, Decimal], Decimal],
        promotions: Iterable[Promotion],
        today: Optional[date] = None,
    ) -> MileageAnalysisResult:
        """
        Analyze every goal and summarize the result.

        velocities is either one velocity for every goal or a mapping
        from goal id to that goal's velocity (missing ids count as 0).
        """
        today = today or date.today()
        promotions = list(promotions)

        analyses: list[GoalAnalysis] = []
        matches: dict[str, PromotionGoalMatch] = {}
        summary = MileageSummary()
        best_savings = _ZERO

        for goal in goals:
            if isinstance(velocities, Mapping):
                velocity = velocities.get(goal.id, _ZERO)
            else:
                velocity = velocities
            analysis = self.analyze(goal, velocity, promotions, today)
            analyses.append(analysis)

            if analysis.viability == ViabilityStatus.ACHIEVABLE:
                summary.trips_ready += 1
            elif analysis.viability == ViabilityStatus.PARTIALLY_ACHIEVABLE:
                summary.trips_soon += 1

            for helpful in analysis.helpful_promotions:
                match = matches.setdefault(
                    helpful.promotion_id,
                    PromotionGoalMatch(promotion_id=helpful.promotion_id),
                )
                if goal.id not in match.goal_ids:
                    match.goal_ids.append(goal.id)
                    match.goal_names.append(goal.name)

            if analysis.helpful_promotions:
                top = analysis.helpful_promotions[0]
                savings = top.savings_miles or _ZERO
                if savings > best_savings:
                    best_savings = savings
                    summary.best_opportunity = BestOpportunity(
                        goal_name=goal.name,
                        promotion_title=top.promotion_title,
                        savings_miles=savings,
                        savings_description=(
                            f"Save {_format_miles(savings)} miles on {goal.name}"
                        ),
                    )

        summary.promotions_helping_goals = len(matches)
        logger.debug(
            "goals_analyzed",
            goal_count=len(analyses),
            trips_ready=summary.trips_ready,
            trips_soon=summary.trips_soon,
        )
        return MileageAnalysisResult(
            goal_analyses=analyses,
            promotion_matches=matches,
            summary=summary,
        )
