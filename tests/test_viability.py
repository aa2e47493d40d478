"""
Tests for viability analysis and promotion matching.

The analyzer is pure, so goals and promotions are built directly.
"""

import pytest
from datetime import date
from decimal import Decimal

from mileage.analysis import (
    ViabilityAnalyzer,
    best_promotion_for_goal,
    find_matching_promotions,
    months_to_cover,
    score_destination,
)
from mileage.models.mileage import (
    MileageGoal,
    Promotion,
    PromotionBenefitType,
    PromotionType,
    ViabilityStatus,
)


TODAY = date(2026, 1, 15)


def make_goal(current="500", target="1000", **overrides):
    fields = {
        "owner_id": "alice",
        "name": "Trip",
        "target_miles": Decimal(target),
        "current_miles": Decimal(current),
    }
    fields.update(overrides)
    return MileageGoal(**fields)


def make_promotion(**overrides):
    fields = {
        "airline": "TAP",
        "title": "Promo",
        "valid_from": date(2026, 1, 1),
        "valid_to": date(2026, 6, 30),
    }
    fields.update(overrides)
    return Promotion(**fields)


@pytest.fixture
def analyzer():
    return ViabilityAnalyzer(default_horizon_months=12)


class TestClassification:
    """Tests for the viability rules."""

    def test_achievable_has_no_estimate_or_promotion(self, analyzer):
        goal = make_goal(current="1200")
        promo = make_promotion(miles_required=Decimal("500"))

        analysis = analyzer.analyze(goal, Decimal("100"), [promo], TODAY)

        assert analysis.viability == ViabilityStatus.ACHIEVABLE
        assert analysis.missing_miles == Decimal("0")
        assert analysis.estimated_months_to_achieve is None
        assert analysis.best_promotion is None
        assert analysis.helpful_promotions == []

    def test_partially_achievable_within_horizon(self, analyzer):
        analysis = analyzer.analyze(make_goal(), Decimal("200"), [], TODAY)

        assert analysis.viability == ViabilityStatus.PARTIALLY_ACHIEVABLE
        assert analysis.estimated_months_to_achieve == 3
        assert analysis.projected_completion_date == date(2026, 4, 15)
        assert analysis.percent_complete == Decimal("50")

    def test_zero_velocity_is_not_achievable(self, analyzer):
        analysis = analyzer.analyze(make_goal(), Decimal("0"), [], TODAY)

        assert analysis.viability == ViabilityStatus.NOT_ACHIEVABLE
        assert analysis.estimated_months_to_achieve is None
        assert analysis.projected_completion_date is None

    def test_past_target_date_is_not_achievable(self, analyzer):
        goal = make_goal(target_date=date(2026, 3, 1))
        analysis = analyzer.analyze(goal, Decimal("100"), [], TODAY)

        assert analysis.viability == ViabilityStatus.NOT_ACHIEVABLE
        assert analysis.estimated_months_to_achieve == 5

    def test_projection_on_target_date_counts(self, analyzer):
        goal = make_goal(target_date=date(2026, 4, 15))
        analysis = analyzer.analyze(goal, Decimal("200"), [], TODAY)
        assert analysis.viability == ViabilityStatus.PARTIALLY_ACHIEVABLE

    def test_default_horizon(self):
        analyzer = ViabilityAnalyzer(default_horizon_months=2)
        analysis = analyzer.analyze(make_goal(), Decimal("200"), [], TODAY)
        assert analysis.viability == ViabilityStatus.NOT_ACHIEVABLE

    def test_more_miles_never_degrade_viability(self, analyzer):
        rank = {
            ViabilityStatus.NOT_ACHIEVABLE: 0,
            ViabilityStatus.PARTIALLY_ACHIEVABLE: 1,
            ViabilityStatus.ACHIEVABLE: 2,
        }
        statuses = [
            analyzer.analyze(
                make_goal(current=str(current), target_date=date(2026, 7, 15)),
                Decimal("100"),
                [],
                TODAY,
            ).viability
            for current in range(0, 1201, 100)
        ]

        ranks = [rank[status] for status in statuses]
        assert ranks == sorted(ranks)
        assert statuses[0] == ViabilityStatus.NOT_ACHIEVABLE
        assert statuses[-1] == ViabilityStatus.ACHIEVABLE

    def test_messages(self, analyzer):
        ready = analyzer.analyze(make_goal(current="1000"), Decimal("0"), [], TODAY)
        soon = analyzer.analyze(make_goal(), Decimal("500"), [], TODAY)
        stuck = analyzer.analyze(make_goal(), Decimal("0"), [], TODAY)

        assert "enough miles" in ready.viability_message
        assert "about 1 month " in soon.viability_message
        assert "no recent earning" in stuck.viability_message


class TestMonthsToCover:
    """Tests for the ceiling month estimate."""

    def test_rounds_up(self):
        assert months_to_cover(Decimal("500"), Decimal("200")) == 3

    def test_exact(self):
        assert months_to_cover(Decimal("400"), Decimal("200")) == 2

    def test_nothing_left(self):
        assert months_to_cover(Decimal("0"), Decimal("0")) == 0

    def test_zero_velocity(self):
        assert months_to_cover(Decimal("100"), Decimal("0")) is None


class TestBestPromotion:
    """Tests for choosing the promotion to suggest."""

    def test_lowest_miles_required_wins(self, analyzer):
        cheap = make_promotion(id="cheap", miles_required=Decimal("600"))
        dear = make_promotion(id="dear", miles_required=Decimal("900"))

        analysis = analyzer.analyze(make_goal(), Decimal("50"), [dear, cheap], TODAY)

        assert analysis.best_promotion.promotion_id == "cheap"
        assert analysis.best_promotion.months_to_reach == 2

    def test_tie_breaks_on_soonest_expiry(self, analyzer):
        later = make_promotion(id="later", miles_required=Decimal("600"), valid_to=date(2026, 9, 1))
        sooner = make_promotion(id="sooner", miles_required=Decimal("600"), valid_to=date(2026, 3, 1))

        analysis = analyzer.analyze(make_goal(), Decimal("50"), [later, sooner], TODAY)
        assert analysis.best_promotion.promotion_id == "sooner"

    def test_ignores_unusable_promotions(self, analyzer):
        promotions = [
            make_promotion(id="expired", miles_required=Decimal("100"),
                           valid_from=date(2025, 1, 1), valid_to=date(2026, 1, 14)),
            make_promotion(id="inactive", miles_required=Decimal("100"), is_active=False),
            make_promotion(id="too-big", miles_required=Decimal("1500")),
            make_promotion(id="no-price"),
        ]
        analysis = analyzer.analyze(make_goal(), Decimal("50"), promotions, TODAY)
        assert analysis.best_promotion is None

    def test_expiring_today_still_counts(self, analyzer):
        promo = make_promotion(id="today", miles_required=Decimal("100"), valid_to=TODAY)
        analysis = analyzer.analyze(make_goal(), Decimal("50"), [promo], TODAY)

        assert analysis.best_promotion.promotion_id == "today"
        assert analysis.best_promotion.months_to_reach == 0

    def test_months_to_reach_unknown_without_velocity(self, analyzer):
        promo = make_promotion(miles_required=Decimal("800"))
        analysis = analyzer.analyze(make_goal(), Decimal("0"), [promo], TODAY)
        assert analysis.best_promotion.months_to_reach is None


class TestHelpfulPromotions:
    """Tests for promotions that make a goal cheaper or faster."""

    def test_transfer_bonus_reduces_miles_needed(self, analyzer):
        promo = make_promotion(
            promotion_type=PromotionType.TRANSFER_BONUS,
            bonus_percentage=Decimal("100"),
        )
        (helpful,) = analyzer.helpful_promotions(make_goal(), [promo], TODAY)

        assert helpful.benefit_type == PromotionBenefitType.BONUS_PURCHASE
        assert helpful.adjusted_miles_needed == Decimal("250")
        assert helpful.savings_miles == Decimal("250")

    def test_route_discount_needs_matching_destination(self, analyzer):
        lisbon = make_promotion(
            id="lisbon",
            promotion_type=PromotionType.ROUTE_DISCOUNT,
            destination="Lisboa",
            route_from="GRU",
            miles_required=Decimal("10000"),
            discount_percentage=Decimal("20"),
        )
        tokyo = make_promotion(
            id="tokyo",
            promotion_type=PromotionType.ROUTE_DISCOUNT,
            destination="Tóquio",
            miles_required=Decimal("10000"),
            discount_percentage=Decimal("20"),
        )
        goal = make_goal(name="Trip to Lisbon")

        (helpful,) = analyzer.helpful_promotions(goal, [lisbon, tokyo], TODAY)

        assert helpful.promotion_id == "lisbon"
        assert helpful.adjusted_miles_needed == Decimal("8000")
        assert helpful.savings_miles == Decimal("2000")

    def test_double_points_accelerates(self, analyzer):
        promo = make_promotion(
            promotion_type=PromotionType.DOUBLE_POINTS,
            bonus_percentage=Decimal("100"),
        )
        (helpful,) = analyzer.helpful_promotions(make_goal(), [promo], TODAY)

        assert helpful.benefit_type == PromotionBenefitType.ACCELERATES_EARNING
        assert helpful.savings_miles is None

    def test_sorted_by_savings(self, analyzer):
        small = make_promotion(
            id="small", promotion_type=PromotionType.BUY_MILES, bonus_percentage=Decimal("25"),
        )
        big = make_promotion(
            id="big", promotion_type=PromotionType.TRANSFER_BONUS, bonus_percentage=Decimal("100"),
        )
        faster = make_promotion(
            id="faster", promotion_type=PromotionType.DOUBLE_POINTS, bonus_percentage=Decimal("50"),
        )

        helpful = analyzer.helpful_promotions(make_goal(), [faster, small, big], TODAY)
        assert [h.promotion_id for h in helpful] == ["big", "small", "faster"]


class TestAnalyzeGoals:
    """Tests for the multi-goal result and its summary."""

    def test_summary(self, analyzer):
        ready = make_goal(name="Ready", current="1000")
        soon = make_goal(name="Soon")
        stuck = make_goal(name="Stuck", current="0", target="90000")
        bonus = make_promotion(
            id="bonus", title="Double transfer",
            promotion_type=PromotionType.TRANSFER_BONUS,
            bonus_percentage=Decimal("100"),
        )

        result = analyzer.analyze_goals(
            [ready, soon, stuck],
            {soon.id: Decimal("200"), stuck.id: Decimal("10")},
            [bonus],
            TODAY,
        )

        assert [a.viability for a in result.goal_analyses] == [
            ViabilityStatus.ACHIEVABLE,
            ViabilityStatus.PARTIALLY_ACHIEVABLE,
            ViabilityStatus.NOT_ACHIEVABLE,
        ]
        assert result.summary.trips_ready == 1
        assert result.summary.trips_soon == 1
        assert result.summary.promotions_helping_goals == 1
        assert result.promotion_matches["bonus"].goal_names == ["Soon", "Stuck"]
        assert result.summary.best_opportunity.goal_name == "Stuck"
        assert result.summary.best_opportunity.savings_miles == Decimal("45000")

    def test_single_velocity_for_all_goals(self, analyzer):
        result = analyzer.analyze_goals([make_goal(), make_goal()], Decimal("200"), [], TODAY)
        assert result.summary.trips_soon == 2
        assert result.summary.best_opportunity is None


class TestDestinationMatching:
    """Tests for matching promotion destinations to goal text."""

    def test_exact_destination(self):
        goal = make_goal(name="Viagem para Paris")
        promo = make_promotion(destination="Paris")
        assert score_destination(promo, goal)[0] == 100

    def test_catalog_name(self):
        goal = make_goal(name="Trip to Lisboa")
        promo = make_promotion(destination="Lisboa Portela")
        assert score_destination(promo, goal)[0] == 95

    def test_related_keyword(self):
        goal = make_goal(name="Disney with the kids")
        promo = make_promotion(destination="Orlando")
        score, reason = score_destination(promo, goal)
        assert score == 80
        assert "disney" in reason

    def test_region(self):
        goal = make_goal(name="Caribe in December")
        promo = make_promotion(destination="Curaçao")
        assert score_destination(promo, goal)[0] == 70

    def test_no_match(self):
        goal = make_goal(name="Visit grandma")
        assert score_destination(make_promotion(destination="Paris"), goal) is None
        assert score_destination(make_promotion(), goal) is None

    def test_matches_sorted_by_score_then_price(self):
        goal = make_goal(name="Paris and then Europe")
        exact = make_promotion(id="exact", destination="Paris", miles_required=Decimal("9000"))
        regional_cheap = make_promotion(id="cheap", destination="Roma", miles_required=Decimal("5000"))
        regional_dear = make_promotion(id="dear", destination="Madri", miles_required=Decimal("7000"))

        matches = find_matching_promotions([regional_dear, exact, regional_cheap], [goal], TODAY)
        assert [m.promotion.id for m in matches] == ["exact", "cheap", "dear"]

    def test_best_for_goal_prefers_redeemable(self):
        goal = make_goal(name="Paris or Europe")
        exact = make_promotion(id="exact", destination="Paris", miles_required=Decimal("9000"))
        affordable = make_promotion(id="affordable", destination="Roma", miles_required=Decimal("5000"))

        best = best_promotion_for_goal([exact, affordable], goal, Decimal("6000"), TODAY)
        assert best.promotion.id == "affordable"

        fallback = best_promotion_for_goal([exact, affordable], goal, Decimal("100"), TODAY)
        assert fallback.promotion.id == "exact"

    def test_expired_and_inactive_promotions_never_match(self):
        goal = make_goal(name="Paris or Europe")
        expired = make_promotion(id="expired", destination="Paris", miles_required=Decimal("1000"),
                                 valid_from=date(2025, 1, 1), valid_to=date(2026, 1, 14))
        paused = make_promotion(id="paused", destination="Paris", miles_required=Decimal("2000"),
                                is_active=False)
        current = make_promotion(id="current", destination="Roma", miles_required=Decimal("5000"))

        matches = find_matching_promotions([expired, paused, current], [goal], TODAY)
        assert [m.promotion.id for m in matches] == ["current"]

        best = best_promotion_for_goal([expired, paused, current], goal, Decimal("9000"), TODAY)
        assert best.promotion.id == "current"
