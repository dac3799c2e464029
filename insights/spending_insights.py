"""
spending_insights.py
---------------------
Rule-based spending insights for the dashboard.

Each rule looks at a recent window of expenses and, when its threshold is
crossed, emits one short Insight:

    - week over week:   spend in the last 7 days vs the 7 days before
    - top category:     biggest expense category this month
    - budget:           this month's expenses as a share of income
    - trend:            this month vs the month-sized window before it
    - frequent merchant: 3+ purchases at one merchant this month

Thresholds come from config.yaml.
"""

from datetime import date, datetime, timedelta
from typing import Iterable, List

import pandas as pd
from dateutil.relativedelta import relativedelta

from core.models import Insight, Transaction
from config.config_loader import get_spending_insights_config


def _to_frame(transactions: Iterable[Transaction]) -> pd.DataFrame:
    rows = [
        {
            "type": t.type,
            "category": t.category,
            "merchant": t.merchant or "",
            "amount": float(t.amount),
            "transaction_date": t.date,
        }
        for t in transactions
        if t.date is not None
    ]
    df = pd.DataFrame(rows, columns=["type", "category", "merchant", "amount", "transaction_date"])
    df["transaction_date"] = pd.to_datetime(df["transaction_date"])
    df["amount"] = df["amount"].astype(float)
    return df


def _between(df: pd.DataFrame, start: date, end: date) -> pd.DataFrame:
    """Rows dated in [start, end)."""
    dates = df["transaction_date"]
    return df[(dates >= pd.Timestamp(start)) & (dates < pd.Timestamp(end))]


def _expense_total(df: pd.DataFrame) -> float:
    return float(df.loc[df["type"] == "expense", "amount"].sum())


def generate_insights(transactions: Iterable[Transaction], today: date | None = None) -> List[Insight]:
    """
    Run every insight rule against the transaction list.

    Args:
        transactions: Full transaction list.
        today: Reference date. Defaults to date.today().

    Returns:
        Insights in rule order; rules whose threshold is not crossed are omitted.
    """
    config = get_spending_insights_config()
    today = today or date.today()
    created_at = datetime.now()
    stamp = int(created_at.timestamp())

    df = _to_frame(transactions)
    insights: List[Insight] = []

    def emit(n: int, kind: str, message: str, severity: str) -> None:
        insights.append(Insight(
            id=f"insight_{stamp}_{n}", type=kind, message=message,
            severity=severity, created_at=created_at,
        ))

    month_start = today.replace(day=1)
    next_month_start = month_start + relativedelta(months=1)
    last_week_start = today - timedelta(days=7)
    last_month_start = (today - timedelta(days=30)).replace(day=1)

    this_month = _between(df, month_start, next_month_start)
    this_month_expenses = this_month[this_month["type"] == "expense"]

    # --- Week over week ---
    this_week_spend = _expense_total(df[df["transaction_date"] >= pd.Timestamp(last_week_start)])
    previous_week_spend = _expense_total(_between(df, last_week_start - timedelta(days=7), last_week_start))
    if previous_week_spend > 0:
        change = (this_week_spend - previous_week_spend) / previous_week_spend * 100
        if abs(change) > config["week_change_pct"]:
            if change > 0:
                emit(1, "spending",
                     f"You spent {change:.0f}% more than last week. Consider reviewing your recent purchases.",
                     "warning")
            else:
                emit(1, "spending", f"Great job! You spent {abs(change):.0f}% less than last week.", "success")

    # --- Top category ---
    if not this_month_expenses.empty:
        totals = this_month_expenses.groupby("category")["amount"].sum().sort_values(ascending=False, kind="mergesort")
        top_category, top_amount = totals.index[0], float(totals.iloc[0])
        if top_amount > 0:
            emit(2, "category",
                 f"Your biggest expense category this month is {top_category} (${top_amount:,.2f}).", "info")

    # --- Budget ---
    month_expenses = _expense_total(this_month)
    month_income = float(this_month.loc[this_month["type"] == "income", "amount"].sum())
    if month_income > 0:
        ratio = month_expenses / month_income * 100
        if ratio > config["budget_warning_pct"]:
            emit(3, "budget",
                 f"You're spending {ratio:.0f}% of your income this month. "
                 f"Consider reducing expenses to build savings.",
                 "warning")
        elif ratio < config["budget_success_pct"]:
            emit(4, "budget",
                 f"Excellent! You're only spending {ratio:.0f}% of your income. Great savings potential!",
                 "success")

    # --- Trend ---
    last_month_spend = _expense_total(_between(df, last_month_start, month_start))
    if last_month_spend > 0:
        trend = (month_expenses - last_month_spend) / last_month_spend * 100
        if abs(trend) > config["trend_change_pct"]:
            if trend > 0:
                emit(5, "trend", f"Your spending increased by {trend:.0f}% compared to last month.", "warning")
            else:
                emit(5, "trend",
                     f"Your spending decreased by {abs(trend):.0f}% compared to last month. Keep it up!",
                     "success")

    # --- Frequent merchant ---
    with_merchant = this_month_expenses[this_month_expenses["merchant"] != ""]
    if not with_merchant.empty:
        counts = with_merchant["merchant"].value_counts(sort=True)
        merchant, count = counts.index[0], int(counts.iloc[0])
        if count >= config["frequent_merchant_min"]:
            emit(6, "spending",
                 f"You've made {count} purchases at {merchant} this month. "
                 f"This might be a subscription or recurring expense.",
                 "info")

    return insights
