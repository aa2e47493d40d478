"""External loyalty-program balance pool."""

from mileage.programs.pool import build_overview, summarize_program_balances

__all__ = ["build_overview", "summarize_program_balances"]
