"""
Promotion Matching

Scores how well a promotion's destination fits the free text of a goal
("Trip to Lisbon in May", "Disney with the kids"). Scores:

    100  the promotion's destination appears verbatim in the goal text
     95  the goal mentions the destination by its catalog name
     80  the goal mentions another keyword for the destination, such
         as its country
     70  the goal names a region that contains the destination

Keyword lists carry both Portuguese and English names because goal text
is written by users in either language.
"""

import re
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

from mileage.models.mileage import MileageGoal, Promotion, PromotionMatch


DESTINATION_KEYWORDS: dict[str, list[str]] = {
    # United States
    "miami": ["miami", "eua", "estados unidos", "usa", "flórida", "florida", "america"],
    "orlando": ["orlando", "eua", "estados unidos", "usa", "disney", "flórida", "florida", "america"],
    "new york": ["nova york", "new york", "nyc", "eua", "estados unidos", "usa", "america", "manhattan"],
    "los angeles": ["los angeles", "eua", "estados unidos", "usa", "california", "hollywood", "america"],
    "las vegas": ["las vegas", "vegas", "eua", "estados unidos", "usa", "america"],
    # Europe
    "lisboa": ["lisboa", "lisbon", "portugal", "europa", "europe"],
    "paris": ["paris", "frança", "france", "europa", "europe"],
    "londres": ["londres", "london", "inglaterra", "uk", "reino unido", "europa", "europe"],
    "madri": ["madri", "madrid", "espanha", "spain", "europa", "europe"],
    "roma": ["roma", "rome", "itália", "italy", "europa", "europe"],
    "barcelona": ["barcelona", "espanha", "spain", "europa", "europe"],
    "amsterdam": ["amsterdam", "holanda", "netherlands", "europa", "europe"],
    # South America
    "buenos aires": ["buenos aires", "argentina", "america do sul", "south america"],
    "santiago": ["santiago", "chile", "america do sul", "south america"],
    "lima": ["lima", "peru", "america do sul", "south america"],
    "bogotá": ["bogotá", "bogota", "colombia", "colômbia", "america do sul", "south america"],
    # Brazil
    "são paulo": ["são paulo", "sampa", "guarulhos"],
    "rio de janeiro": ["rio de janeiro", "galeão"],
    "salvador": ["salvador", "bahia", "nordeste"],
    "recife": ["recife", "pernambuco", "nordeste"],
    "fortaleza": ["fortaleza", "ceará", "nordeste"],
    "natal": ["natal", "nordeste"],
    "florianópolis": ["florianópolis", "floripa", "santa catarina"],
    "porto alegre": ["porto alegre", "rio grande do sul"],
    # Caribbean
    "cancun": ["cancun", "cancún", "méxico", "mexico", "caribe", "caribbean"],
    "punta cana": ["punta cana", "república dominicana", "caribe", "caribbean"],
    "aruba": ["aruba", "caribe", "caribbean"],
    # Asia and Middle East
    "tóquio": ["tóquio", "tokyo", "japão", "japan", "ásia", "asia"],
    "dubai": ["dubai", "emirados", "uae", "oriente médio", "middle east"],
}

REGION_PATTERNS: list[tuple[re.Pattern, list[str]]] = [
    (
        re.compile(r"\beua\b|\bestados unidos\b|\busa\b|\bamerica\b", re.IGNORECASE),
        ["miami", "orlando", "new york", "los angeles", "las vegas"],
    ),
    (
        re.compile(r"\beuropa\b|\beurope\b", re.IGNORECASE),
        ["lisboa", "lisbon", "paris", "londres", "london", "madrid", "madri",
         "roma", "rome", "amsterdam", "barcelona"],
    ),
    (
        re.compile(r"\bnordeste\b", re.IGNORECASE),
        ["salvador", "recife", "fortaleza", "natal", "maceió", "joão pessoa"],
    ),
    (
        re.compile(r"\bcaribe\b|\bcaribbean\b", re.IGNORECASE),
        ["cancun", "cancún", "punta cana", "aruba", "curaçao"],
    ),
]


def goal_text(goal: MileageGoal) -> str:
    return f"{goal.name} {goal.description or ''}".lower()


def _contains_word(text: str, phrase: str) -> bool:
    return re.search(rf"\b{re.escape(phrase)}\b", text) is not None


def _overlaps(a: str, b: str) -> bool:
    return a in b or b in a


def score_destination(promotion: Promotion, goal: MileageGoal) -> Optional[tuple[int, str]]:
    """
    Score one promotion against one goal.

    Returns (score, reason) or None when the promotion's destination has
    nothing to do with the goal.
    """
    if not promotion.destination:
        return None

    text = goal_text(goal)
    destination = promotion.destination.lower()

    if _contains_word(text, destination):
        return 100, f"Exact destination: {promotion.destination}"

    for name, keywords in DESTINATION_KEYWORDS.items():
        if not _overlaps(destination, name) and destination not in keywords:
            continue
        for keyword in keywords:
            if _contains_word(text, keyword):
                score = 95 if keyword in (name, destination) else 80
                return score, f'Matches "{keyword}" in your goal'

    for pattern, destinations in REGION_PATTERNS:
        if pattern.search(text) and any(_overlaps(destination, d) for d in destinations):
            return 70, "Matching region"

    return None


def find_matching_promotions(
    promotions: Iterable[Promotion],
    goals: Iterable[MileageGoal],
    today: Optional[date] = None,
) -> list[PromotionMatch]:
    """
    Every (promotion, goal) pair with a destination match, among the
    promotions still valid on `today`.

    Sorted by score, highest first, then by miles required (cheapest
    first, promotions without a price last).
    """
    today = today or date.today()
    goals = list(goals)
    matches = []
    for promotion in promotions:
        if not promotion.is_valid_on(today):
            continue
        for goal in goals:
            scored = score_destination(promotion, goal)
            if scored is None:
                continue
            score, reason = scored
            matches.append(PromotionMatch(
                promotion=promotion,
                goal_id=goal.id,
                match_score=score,
                match_reason=reason,
            ))

    def sort_key(match: PromotionMatch):
        miles = match.promotion.miles_required
        return (-match.match_score, miles is None, miles or Decimal("0"))

    matches.sort(key=sort_key)
    return matches


def best_promotion_for_goal(
    promotions: Iterable[Promotion],
    goal: MileageGoal,
    user_miles: Decimal,
    today: Optional[date] = None,
) -> Optional[PromotionMatch]:
    """Best match for a goal, preferring promotions the user can already redeem."""
    matches = find_matching_promotions(promotions, [goal], today)
    if not matches:
        return None

    for match in matches:
        required = match.promotion.miles_required
        if required is not None and user_miles >= required:
            return match
    return matches[0]
