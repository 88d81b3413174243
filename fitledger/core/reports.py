"""Report Generation - Pure functions for generating reports.

All functions are pure: same input always produces same output, no side effects.
"""

from datetime import date, timedelta
from typing import Optional

from .goals import KCAL_PER_KG
from .ledger import remaining_calories
from .models import CalorieBalance, DailyNutrition, DayHistory, Goal, ReminderSummary, WeeklyReport
from .progress import daily_target_balance


def generate_day_history(day: DailyNutrition, balance: Optional[CalorieBalance] = None) -> DayHistory:
    """Generate a history row for a single day.

    Args:
        day: The day's nutrition aggregate
        balance: The day's calorie balance, if one was computed

    Returns:
        DayHistory with totals for the day
    """
    return DayHistory(
        log_date=day.log_date,
        total_calories=day.total_calories,
        total_protein=round(day.total_protein, 1),
        calories_from_exercise=day.calories_from_exercise,
        balance=round(balance.balance, 1) if balance is not None else None,
        entry_count=len(day.entries),
    )


def estimated_weight_change(total_balance: float) -> float:
    """Weight change in kg implied by a cumulative calorie balance.

    Positive value = surplus (potential gain)
    Negative value = deficit (potential loss)
    """
    return total_balance / KCAL_PER_KG


def generate_weekly_report(
    days: list[DailyNutrition],
    balances: list[CalorieBalance],
    week_start: date | None = None,
) -> WeeklyReport:
    """Generate a weekly report from daily aggregates and balances.

    Args:
        days: Daily nutrition aggregates (may be empty or partial week)
        balances: Calorie balances for any dates; only the week's are used
        week_start: Start date of the week (defaults to 7 days ago)

    Returns:
        WeeklyReport with daily rows and aggregate metrics
    """
    if week_start is None:
        week_start = date.today() - timedelta(days=6)

    week_end = week_start + timedelta(days=6)

    week_days = [d for d in days if week_start <= d.log_date <= week_end]
    balance_by_date = {b.log_date: b for b in balances if week_start <= b.log_date <= week_end}

    daily_summaries = [
        generate_day_history(d, balance_by_date.get(d.log_date))
        for d in sorted(week_days, key=lambda x: x.log_date)
    ]

    total_calories = sum(s.total_calories for s in daily_summaries)
    total_protein = sum(s.total_protein for s in daily_summaries)
    days_logged = len(daily_summaries)
    avg_daily_calories = total_calories / days_logged if days_logged > 0 else 0

    # Balances count even for days without a food log (e.g. a fasting day)
    total_balance = sum(b.balance for b in balance_by_date.values())

    return WeeklyReport(
        week_start=week_start,
        week_end=week_end,
        daily_summaries=daily_summaries,
        total_calories=total_calories,
        avg_daily_calories=round(avg_daily_calories, 1),
        total_protein=round(total_protein, 1),
        total_balance=round(total_balance, 1),
        estimated_weight_change_kg=round(estimated_weight_change(total_balance), 2),
        days_logged=days_logged,
    )


def reminder_summary(
    day: DailyNutrition,
    balance: CalorieBalance,
    goal: Optional[Goal] = None,
) -> ReminderSummary:
    """Read-only values a reminder scheduler polls for today's text.

    The target balance is zero when no goal is active.
    """
    return ReminderSummary(
        log_date=day.log_date,
        calories_consumed=round(day.total_calories, 1),
        calorie_target=round(day.calorie_target, 1),
        calories_remaining=round(remaining_calories(day), 1),
        balance=round(balance.balance, 1),
        target_balance=round(daily_target_balance(goal), 1) if goal is not None else 0.0,
        balance_source=balance.source,
        water_consumed_ml=round(day.water_consumed_ml, 1),
        water_target_ml=round(day.water_target_ml, 1),
        water_remaining_ml=round(max(0.0, day.water_target_ml - day.water_consumed_ml), 1),
        protein_consumed=round(day.total_protein, 1),
        protein_target=round(day.protein_target, 1),
    )
