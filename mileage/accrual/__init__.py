"""Accrual calculation and history ledger package."""

from mileage.accrual.calculator import AccrualCalculator, AccrualPreview
from mileage.accrual.ledger import HistoryLedger

__all__ = ["AccrualCalculator", "AccrualPreview", "HistoryLedger"]
