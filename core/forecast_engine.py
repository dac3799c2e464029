"""
forecast_engine.py
-------------------
End-of-month balance forecasting.

Works from a trailing window of history (6 months by default):

    1. Identify recurring income and expense patterns in the window.
    2. Treat every other expense as variable spending and turn it into a
       daily rate.
    3. Project recurring items and the daily rate through month end, and
       combine them with the current balance.

The recurrence pass here is independent of the subscription radar: it groups
by (type, category, merchant), also looks at income, and distinguishes
weekly and biweekly patterns because those drive the projection.

Thresholds come from config.yaml; "today" is injectable for testing.
"""

from datetime import date
from typing import Iterable, List, Tuple

import numpy as np
import pandas as pd
from dateutil.relativedelta import relativedelta

from core.models import ForecastResult, RecurringTransaction, Transaction
from config.config_loader import get_forecast_config


_COLUMNS = ["type", "category", "merchant_key", "amount", "transaction_date"]


class ForecastEngine:
    """
    Projects the balance at the last day of the current month.

    Usage:
        engine = ForecastEngine()
        result = engine.forecast(transactions, current_balance=1200.0)
    """

    def __init__(self, config: dict | None = None):
        self.config = config or get_forecast_config()

    # -------------------------------------------------------------------------
    # PUBLIC INTERFACE
    # -------------------------------------------------------------------------

    def forecast(
        self,
        transactions: Iterable[Transaction],
        current_balance: float | None = None,
        today: date | None = None,
    ) -> ForecastResult:
        """
        Run the forecast.

        Args:
            transactions: Full transaction list, any age.
            current_balance: Known balance. If None, derived from every
                transaction dated on or before today.
            today: Reference date. Defaults to date.today().

        Returns:
            ForecastResult with amounts rounded to cents.
        """
        today = today or date.today()
        today_ts = pd.Timestamp(today)
        month_end = today + relativedelta(day=31)
        remaining_days = (month_end - today).days

        df = self._to_frame(transactions)

        window_start = pd.Timestamp(today - relativedelta(months=self.config["history_months"]))
        historical = df[(df["transaction_date"] > window_start) & (df["transaction_date"] < today_ts)]
        current_month = df[
            (df["transaction_date"].dt.year == today.year)
            & (df["transaction_date"].dt.month == today.month)
            & (df["transaction_date"] < today_ts)
        ]

        if current_balance is None:
            current_balance = self._balance_from_transactions(df[df["transaction_date"] <= today_ts])

        # --- Stage 1: recurring patterns ---
        recurring_expenses, recurring_income = self._identify_recurring(historical)

        # --- Stage 2: variable spending rate ---
        average_daily, variable_days = self._average_daily_spending(historical, recurring_expenses)

        # --- Stage 3: projection ---
        projected_recurring_expenses = self._project_recurring(recurring_expenses, current_month, remaining_days)
        projected_recurring_income = self._project_recurring(recurring_income, current_month, remaining_days)
        projected_variable = average_daily * remaining_days

        projected_expenses = projected_recurring_expenses + projected_variable
        projected_income = projected_recurring_income
        projected_eom = round(current_balance + projected_income - projected_expenses, 2)

        confidence = self._determine_confidence(len(historical), len(recurring_expenses))

        insights = self._generate_insights(
            projected_eom=projected_eom,
            current_balance=current_balance,
            average_daily=average_daily,
            recurring_expenses=recurring_expenses,
            projected_variable=projected_variable,
            remaining_days=remaining_days,
        )

        return ForecastResult(
            current_balance=round(current_balance, 2),
            projected_eom_balance=projected_eom,
            projected_income=round(projected_income, 2),
            projected_expenses=round(projected_expenses, 2),
            recurring_expenses=recurring_expenses,
            recurring_income=recurring_income,
            average_daily_spending=round(average_daily, 2),
            remaining_days=remaining_days,
            projected_variable_spending=round(projected_variable, 2),
            confidence=confidence,
            insights=insights,
            historical_transaction_count=len(historical),
            variable_sample_days=variable_days,
        )

    # -------------------------------------------------------------------------
    # INTERNAL: DATA PREPARATION
    # -------------------------------------------------------------------------

    @staticmethod
    def _to_frame(transactions: Iterable[Transaction]) -> pd.DataFrame:
        rows = [
            {
                "type": t.type,
                "category": t.category or "",
                "merchant_key": t.merchant or "",
                "amount": float(t.amount),
                "transaction_date": t.date,
            }
            for t in transactions
            if t.date is not None
        ]
        df = pd.DataFrame(rows, columns=_COLUMNS)
        df["transaction_date"] = pd.to_datetime(df["transaction_date"])
        df["amount"] = df["amount"].astype(float)
        return df

    @staticmethod
    def _balance_from_transactions(df: pd.DataFrame) -> float:
        """+amount for income, -amount for everything else."""
        signed = np.where(df["type"] == "income", df["amount"], -df["amount"])
        return float(np.sum(signed))

    # -------------------------------------------------------------------------
    # INTERNAL: RECURRENCE
    # -------------------------------------------------------------------------

    def _identify_recurring(
        self, historical: pd.DataFrame
    ) -> Tuple[List[RecurringTransaction], List[RecurringTransaction]]:
        """
        Groups history by (type, category, merchant) and keeps groups with
        enough occurrences and consistent amounts.

        Frequency comes from the mean gap: weekly, biweekly, else monthly.
        """
        recurring_expenses: List[RecurringTransaction] = []
        recurring_income: List[RecurringTransaction] = []

        if historical.empty:
            return recurring_expenses, recurring_income

        grouped = historical.groupby(["type", "category", "merchant_key"], sort=False, dropna=False)
        for (txn_type, category, merchant), group in grouped:
            if len(group) < self.config["min_occurrences"]:
                continue

            amounts = group["amount"].to_numpy(dtype=float)
            mean_amt = float(np.mean(amounts))
            if mean_amt <= 0:
                continue
            if not np.all(np.abs(amounts - mean_amt) / mean_amt < self.config["amount_consistency"]):
                continue

            dates = np.sort(group["transaction_date"].to_numpy())
            gaps = np.diff(dates).astype("timedelta64[D]").astype(float)
            mean_gap = float(np.mean(gaps))

            if mean_gap <= self.config["weekly_max_gap_days"]:
                frequency = "weekly"
            elif mean_gap <= self.config["biweekly_max_gap_days"]:
                frequency = "biweekly"
            else:
                frequency = "monthly"

            recurring = RecurringTransaction(
                category=category,
                merchant=merchant or None,
                average_amount=round(mean_amt, 2),
                frequency=frequency,
                occurrences=len(group),
                type=txn_type,
                total_amount=round(float(np.sum(amounts)), 2),
            )
            if txn_type == "expense":
                recurring_expenses.append(recurring)
            else:
                recurring_income.append(recurring)

        return recurring_expenses, recurring_income

    def _average_daily_spending(
        self, historical: pd.DataFrame, recurring_expenses: List[RecurringTransaction]
    ) -> Tuple[float, int]:
        """
        Variable (non-recurring) expense total divided by the span of days it
        covers, at least one day.

        Returns:
            (average daily spend, span in days). (0.0, 0) with no variable expenses.
        """
        recurring_keys = {(r.category, r.merchant or "") for r in recurring_expenses}
        expenses = historical[historical["type"] == "expense"]
        is_recurring = [
            (category, merchant) in recurring_keys
            for category, merchant in zip(expenses["category"], expenses["merchant_key"])
        ]
        variable = expenses[~np.array(is_recurring, dtype=bool)]

        if variable.empty:
            return 0.0, 0

        total_variable = float(variable["amount"].sum())
        span_days = max((variable["transaction_date"].max() - variable["transaction_date"].min()).days, 1)
        return total_variable / span_days, span_days

    @staticmethod
    def _project_recurring(
        recurring: List[RecurringTransaction], current_month: pd.DataFrame, remaining_days: int
    ) -> float:
        """
        Sums what each recurring pattern still owes before month end.

        Monthly items count once unless already seen this month; weekly and
        biweekly items count once per whole remaining week / fortnight.
        """
        total = 0.0
        for r in recurring:
            if r.frequency == "monthly":
                seen = current_month[
                    (current_month["type"] == r.type) & (current_month["category"] == r.category)
                ]
                if r.merchant:
                    seen = seen[seen["merchant_key"] == r.merchant]
                if seen.empty:
                    total += r.average_amount
            elif r.frequency == "weekly":
                total += r.average_amount * (remaining_days // 7)
            elif r.frequency == "biweekly":
                total += r.average_amount * (remaining_days // 14)
        return total

    # -------------------------------------------------------------------------
    # INTERNAL: CONFIDENCE & INSIGHTS
    # -------------------------------------------------------------------------

    def _determine_confidence(self, history_count: int, recurring_count: int) -> str:
        """Maps sample size and recurring-pattern count to high / medium / low."""
        for level in ("high", "medium"):
            bounds = self.config["confidence"][level]
            if history_count >= bounds["min_transactions"] and recurring_count >= bounds["min_recurring"]:
                return level
        return "low"

    def _generate_insights(
        self,
        projected_eom: float,
        current_balance: float,
        average_daily: float,
        recurring_expenses: List[RecurringTransaction],
        projected_variable: float,
        remaining_days: int,
    ) -> list[str]:
        insights = []

        if projected_eom < 0:
            insights.append(
                f"Warning: projected to end the month with a negative balance of ${abs(projected_eom):,.2f}"
            )
        elif projected_eom < current_balance * self.config["significant_decrease_ratio"]:
            insights.append("Warning: balance expected to decrease significantly by end of month")
        else:
            insights.append(f"On track to end the month with ${projected_eom:,.2f}")

        insights.append(f"Your average daily spending is ${average_daily:,.2f}")

        if remaining_days > 0:
            insights.append(f"{remaining_days} days remaining this month")

        if projected_variable > 0:
            insights.append(f"Estimated variable spending: ${projected_variable:,.2f}")

        if recurring_expenses:
            top = sorted(recurring_expenses, key=lambda r: r.average_amount, reverse=True)
            top_total = sum(r.average_amount for r in top[: self.config["top_recurring_count"]])
            insights.append(
                f"{len(recurring_expenses)} recurring expenses detected (~${top_total:,.2f}/month)"
            )

        return insights


# =============================================================================
# MODULE-LEVEL HELPERS
# =============================================================================

def forecast_end_of_month_balance(
    transactions: Iterable[Transaction],
    current_balance: float | None = None,
    today: date | None = None,
) -> ForecastResult:
    """Shortcut: run a config-backed ForecastEngine."""
    return ForecastEngine().forecast(transactions, current_balance=current_balance, today=today)


def forecast_summary(result: ForecastResult) -> str:
    """One-line summary for console or dashboard display."""
    return (
        f"Projected EOM Balance: ${result.projected_eom_balance:,.2f} "
        f"({result.remaining_days} days left, {result.confidence} confidence)"
    )
