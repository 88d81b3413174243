"""Progress Evaluation - weekly and overall on-track classification.

The target for a period is the goal's daily target balance (weekly rate x
7700 / 7) times the number of days. Behind/ahead depends on the target's
sign: a deficit goal is behind when the actual deficit is smaller, a surplus
goal is behind when the actual surplus is smaller.

All functions are pure; ``today`` is always passed in.
"""

from datetime import date, timedelta
from typing import Iterable, Optional

from .goals import daily_calorie_adjustment, estimated_time_to_goal
from .models import (
    CalorieBalance,
    DailyProgressPoint,
    Goal,
    GoalType,
    PeriodProgress,
    ProgressReport,
    ProgressStatus,
)


WEEKLY_TOLERANCE = 0.10
OVERALL_TOLERANCE = 0.15
TREND_TOLERANCE = 0.20
TREND_WINDOW_DAYS = 7
SERIES_MAX_DAYS = 30

EARLY_PROGRESS_SHARE = 0.5
CLOSE_PROGRESS_SHARE = 0.8


def week_start_for(day: date) -> date:
    """Monday of the ISO week containing ``day``."""
    return day - timedelta(days=day.weekday())


def daily_target_balance(goal: Goal) -> float:
    """Intended daily balance for a goal. Negative = planned deficit."""
    return daily_calorie_adjustment(goal.weekly_rate_kg)


def classify(actual: float, target: float, tolerance_share: float) -> tuple[ProgressStatus, float]:
    """Classify an actual cumulative balance against its target.

    Args:
        actual: Summed daily balances for the period
        target: Summed target balances for the period
        tolerance_share: On-track band as a share of |target|

    Returns:
        Tuple of (status, absolute tolerance used)
    """
    tolerance = abs(target) * tolerance_share
    if abs(actual - target) <= tolerance:
        return ProgressStatus.ON_TRACK, tolerance

    if target < 0:
        behind = actual > target
    else:
        behind = actual < target
    return (ProgressStatus.BEHIND if behind else ProgressStatus.AHEAD), tolerance


def _balances_by_date(balances: Iterable[CalorieBalance]) -> dict[date, float]:
    return {b.log_date: b.balance for b in balances}


def _maintenance_details(actual: float, target: float, period: str) -> str:
    side = "above" if actual > target else "below"
    return f"{int(abs(actual - target))} calories {side} maintenance {period}"


def _weekly_text(goal: Goal, status: ProgressStatus, actual: float, target: float) -> tuple[str, str]:
    if status == ProgressStatus.ON_TRACK:
        return "On Track!", "You're doing great this week. Keep it up!"
    if goal.goal_type == GoalType.MAINTAIN:
        return "Off Maintenance", _maintenance_details(actual, target, "this week")
    gap = int(abs(actual - target))
    kind = "deficit" if target < 0 else "surplus"
    if status == ProgressStatus.BEHIND:
        return "Behind Target", f"Need {gap} more calorie {kind} this week"
    return "Ahead of Target", f"You're {gap} calories ahead this week!"


def _overall_text(goal: Goal, status: ProgressStatus, actual: float, target: float) -> tuple[str, str]:
    if status == ProgressStatus.ON_TRACK:
        return "On Track!", "You're making excellent progress towards your goal."
    if goal.goal_type == GoalType.MAINTAIN:
        return "Off Maintenance", _maintenance_details(actual, target, "since your goal started")
    gap = int(abs(actual - target))
    kind = "deficit" if target < 0 else "surplus"
    if status == ProgressStatus.BEHIND:
        return (
            "Behind Target",
            f"You need to increase your {kind} by {gap} calories to catch up to your goal.",
        )
    return "Ahead of Target", f"Excellent! You're {gap} calories ahead of your target."


def evaluate_weekly(goal: Goal, by_date: dict[date, float], today: date) -> PeriodProgress:
    """Monday-aligned week through ``today`` against daily target x 7."""
    start = week_start_for(today)
    days = [start + timedelta(days=i) for i in range((today - start).days + 1)]
    actual = sum(by_date.get(d, 0.0) for d in days)
    target = daily_target_balance(goal) * 7

    status, tolerance = classify(actual, target, WEEKLY_TOLERANCE)
    headline, details = _weekly_text(goal, status, actual, target)
    return PeriodProgress(
        status=status,
        actual_balance=actual,
        target_balance=target,
        tolerance=tolerance,
        headline=headline,
        details=details,
    )


def days_elapsed_since_start(goal: Goal, today: date) -> int:
    return max(0, (today - goal.start_date).days)


def evaluate_overall(goal: Goal, by_date: dict[date, float], today: date) -> PeriodProgress:
    """The ``days_elapsed`` days ending today against daily target x days."""
    elapsed = days_elapsed_since_start(goal, today)
    actual = sum(by_date.get(today - timedelta(days=i), 0.0) for i in range(elapsed))
    target = daily_target_balance(goal) * elapsed

    status, tolerance = classify(actual, target, OVERALL_TOLERANCE)
    headline, details = _overall_text(goal, status, actual, target)
    return PeriodProgress(
        status=status,
        actual_balance=actual,
        target_balance=target,
        tolerance=tolerance,
        headline=headline,
        details=details,
    )


def days_remaining(goal: Goal, today: date, current_weight_kg: Optional[float]) -> Optional[int]:
    """Days left, from the target date or else from remaining weight delta / rate.

    Returns None when neither is available.
    """
    if goal.target_date is not None:
        return max(0, (goal.target_date - today).days)

    if current_weight_kg is None:
        return None
    weeks = estimated_time_to_goal(goal, current_weight_kg)
    if weeks is None:
        return None
    return max(0, round(weeks * 7))


def current_week_number(goal: Goal, today: date) -> int:
    return max(1, (week_start_for(today) - goal.start_date).days // 7 + 1)


def overall_progress_share(overall: PeriodProgress) -> float:
    """Share of the target balance reached, 0.0 - 1.0. Wrong-direction balances count as 0."""
    if overall.target_balance == 0:
        return 0.0
    return min(1.0, max(0.0, overall.actual_balance / overall.target_balance))


def build_daily_series(goal: Goal, by_date: dict[date, float], today: date) -> list[DailyProgressPoint]:
    """Cumulative actual vs target balance, oldest first, at most 30 days."""
    span = min(SERIES_MAX_DAYS, days_elapsed_since_start(goal, today))
    daily_target = daily_target_balance(goal)

    series = []
    cumulative = 0.0
    for index, offset in enumerate(range(span - 1, -1, -1), start=1):
        day = today - timedelta(days=offset)
        balance = by_date.get(day, 0.0)
        cumulative += balance
        series.append(
            DailyProgressPoint(
                log_date=day,
                daily_balance=balance,
                cumulative_balance=cumulative,
                target_cumulative_balance=daily_target * index,
            )
        )
    return series


def recent_average_balance(by_date: dict[date, float], today: date) -> Optional[float]:
    """Average balance over the days with data in the last week; None if there are none."""
    recent = [
        by_date[today - timedelta(days=i)]
        for i in range(TREND_WINDOW_DAYS)
        if today - timedelta(days=i) in by_date
    ]
    if not recent:
        return None
    return sum(recent) / len(recent)


def generate_insights(
    goal: Goal,
    weekly: PeriodProgress,
    progress_share: float,
    remaining: Optional[int],
    recent_average: Optional[float],
) -> list[str]:
    """Advisory text from simple threshold rules."""
    insights = []

    if not weekly.is_on_track:
        if goal.goal_type == GoalType.MAINTAIN:
            insights.append("Balance your intake with your activity to hold your weight steady.")
        elif weekly.target_balance < 0:
            insights.append(
                "Try increasing your daily activity or reducing portion sizes "
                "to meet your weekly deficit goal."
            )
        else:
            insights.append(
                "Consider adding healthy snacks or increasing meal portions "
                "to meet your weekly surplus goal."
            )

    if progress_share < EARLY_PROGRESS_SHARE and remaining is not None:
        insights.append("You're in the early stages of your goal. Stay consistent with your daily habits.")
    elif progress_share > CLOSE_PROGRESS_SHARE:
        insights.append("You're close to your goal! Maintain your current approach.")

    daily_target = daily_target_balance(goal)
    if recent_average is not None and daily_target != 0:
        if abs(recent_average - daily_target) > abs(daily_target) * TREND_TOLERANCE:
            insights.append("Your recent daily average is off target. Consider adjusting your daily routine.")

    if not insights:
        insights.append("Keep tracking your daily nutrition and stay consistent with your goals!")

    return insights


def no_goal_report() -> ProgressReport:
    """Neutral report returned when there is no active goal."""
    empty = PeriodProgress(
        status=ProgressStatus.NO_GOAL,
        headline="No active goal",
        details="Set a goal to track your progress",
    )
    return ProgressReport(
        has_goal=False,
        weekly=empty,
        overall=empty.model_copy(),
        insights=["Set a fitness goal to start tracking your progress!"],
    )


def evaluate(
    goal: Optional[Goal],
    balances: Iterable[CalorieBalance],
    today: date,
    current_weight_kg: Optional[float] = None,
) -> ProgressReport:
    """Evaluate the active goal against a history of daily balances.

    Args:
        goal: The active goal, or None
        balances: Daily balances; later items win for duplicate dates
        today: The reference day
        current_weight_kg: Latest weight, used to estimate days remaining

    Returns:
        ProgressReport (``no_goal_report()`` when goal is None)
    """
    if goal is None:
        return no_goal_report()

    by_date = _balances_by_date(balances)
    weekly = evaluate_weekly(goal, by_date, today)
    overall = evaluate_overall(goal, by_date, today)
    remaining = days_remaining(goal, today, current_weight_kg)
    share = overall_progress_share(overall)

    return ProgressReport(
        has_goal=True,
        weekly=weekly,
        overall=overall,
        insights=generate_insights(goal, weekly, share, remaining, recent_average_balance(by_date, today)),
        days_remaining=remaining,
        current_week_number=current_week_number(goal, today),
        overall_progress=share,
        daily_series=build_daily_series(goal, by_date, today),
    )
