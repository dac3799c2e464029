"""
models.py
----------
Core domain models. These are the typed contracts between engine layers.

- Transaction: Consumed, never owned. Supplied by the store or produced as a
  draft (id=None) by the CSV importer.

- Subscription: Output of the subscription detector. Recomputed in full on
  every run and never treated as a source of truth.

- RecurringTransaction / ForecastResult: Output of the forecast engine.

- CSVColumnMapping / CSVParseResult: Contract between the CSV importer and
  its caller.

- Insight: Output of the rule-based spending insight generator.
"""

from dataclasses import dataclass, field, asdict
from datetime import date, datetime
from typing import Optional

from core.normalizers import to_date


@dataclass
class Transaction:
    """
    A single income or expense record.

    Dates are datetime.date; the store's JSON records use ISO strings and
    camelCase keys, see from_dict() / to_dict().
    """

    amount: float                    # Non-negative, single currency unit
    category: str
    date: date
    type: str = "expense"            # "expense" | "income"
    note: str = ""
    merchant: Optional[str] = None
    id: Optional[str] = None         # None on a CSV draft before merge

    # User-asserted subscription fields
    is_subscription: bool = False
    subscription_start_date: Optional[date] = None
    subscription_end_date: Optional[date] = None

    @property
    def is_expense(self) -> bool:
        return self.type == "expense"

    @property
    def is_income(self) -> bool:
        return self.type == "income"

    @classmethod
    def from_dict(cls, record: dict) -> "Transaction":
        """Builds a Transaction from a store record (camelCase or snake_case keys)."""
        def pick(*keys):
            for key in keys:
                if record.get(key) not in (None, ""):
                    return record[key]
            return None

        return cls(
            id=pick("id"),
            amount=float(record.get("amount") or 0.0),
            category=record.get("category") or "Other",
            note=record.get("note") or "",
            date=to_date(record.get("date")),
            type=record.get("type") or "expense",
            merchant=pick("merchant"),
            is_subscription=bool(pick("isSubscription", "is_subscription")),
            subscription_start_date=to_date(pick("subscriptionStartDate", "subscription_start_date")),
            subscription_end_date=to_date(pick("subscriptionEndDate", "subscription_end_date")),
        )

    def to_dict(self) -> dict:
        """Serializes to the store's record shape."""
        record = {
            "id": self.id,
            "amount": self.amount,
            "category": self.category,
            "note": self.note,
            "date": self.date.isoformat() if self.date else None,
            "type": self.type,
        }
        if self.merchant:
            record["merchant"] = self.merchant
        if self.is_subscription:
            record["isSubscription"] = True
        if self.subscription_start_date:
            record["subscriptionStartDate"] = self.subscription_start_date.isoformat()
        if self.subscription_end_date:
            record["subscriptionEndDate"] = self.subscription_end_date.isoformat()
        return record


@dataclass
class Subscription:
    """
    A detected (or user-asserted) recurring payment.

    The id is derived from the grouping key, so it is only as stable as the
    merchant/category pair that produced it.
    """

    id: str
    name: str                        # Merchant if known, else category
    amount: float                    # Group mean, rounded to cents
    category: str
    frequency: str                   # "monthly" | "yearly"
    next_billing_date: date
    detected_from: list[str] = field(default_factory=list)  # Contributing txn ids
    subscription_start_date: Optional[date] = None
    subscription_end_date: Optional[date] = None

    def to_dict(self) -> dict:
        record = asdict(self)
        for key in ("next_billing_date", "subscription_start_date", "subscription_end_date"):
            if record[key] is not None:
                record[key] = record[key].isoformat()
        return record


@dataclass
class RecurringTransaction:
    """A recurring pattern found by the forecast engine's own recurrence pass."""

    category: str
    merchant: Optional[str]
    average_amount: float
    frequency: str                   # "monthly" | "weekly" | "biweekly"
    occurrences: int
    type: str                        # "expense" | "income"
    total_amount: float = 0.0        # Sum of contributing amounts


@dataclass
class ForecastResult:
    """End-of-month balance projection."""

    current_balance: float
    projected_eom_balance: float
    projected_income: float
    projected_expenses: float
    recurring_expenses: list[RecurringTransaction]
    recurring_income: list[RecurringTransaction]
    average_daily_spending: float
    remaining_days: int
    projected_variable_spending: float
    confidence: str                  # "high" | "medium" | "low"
    insights: list[str] = field(default_factory=list)

    # Sample diagnostics
    historical_transaction_count: int = 0
    variable_sample_days: int = 0


@dataclass
class CSVColumnMapping:
    """
    Which CSV header plays which role. amount and date are required and stay
    "" when undetected; the optional roles stay None.
    """

    amount: str = ""
    date: str = ""
    category: Optional[str] = None
    note: Optional[str] = None
    merchant: Optional[str] = None
    type: Optional[str] = None

    @property
    def missing_required(self) -> list[str]:
        return [role for role in ("amount", "date") if not getattr(self, role)]


@dataclass
class CSVParseResult:
    success: bool
    transactions: list[Transaction] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)  # Capped for display
    skipped: int = 0                 # Every failed row, regardless of the cap
    total: int = 0


@dataclass
class Insight:
    """A short, rule-based observation about recent spending."""

    id: str
    type: str                        # "spending" | "category" | "budget" | "trend"
    message: str
    severity: str                    # "info" | "warning" | "success"
    created_at: datetime = field(default_factory=datetime.now)
