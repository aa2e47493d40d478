"""Mileage goal tracking package."""

from mileage.goals.tracker import GoalTracker

__all__ = ["GoalTracker"]
