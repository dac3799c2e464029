"""
subscription_detector.py
-------------------------
Subscription radar: finds recurring expense patterns in a transaction list.

It only answers one question:

    "Does this merchant + category pair look like a subscription?"

Output: a Subscription per qualifying group, recomputed in full on every
call. Nothing is cached and the input list is never mutated.

Design decisions:
    - Grouping key is the (merchant, category) tuple; a missing merchant is
      its own key value, so separator characters in names never collide.
    - Transactions the user flagged as subscriptions (and has not cancelled)
      lower the evidence bar: one transaction is enough, amounts may vary
      more, and short intervals are tolerated.
    - Frequency inference is deliberately lenient and biased toward
      "monthly"; only the yearly band and too-short unflagged intervals
      change the outcome.
    - All thresholds and bands are read from config.yaml.
"""

from dataclasses import replace
from datetime import date
from typing import Iterable, List

import numpy as np
import pandas as pd
from dateutil.relativedelta import relativedelta

from core.models import Subscription, Transaction
from config.config_loader import get_subscription_detection_config


_COLUMNS = [
    "transaction_id", "merchant_key", "category", "amount", "transaction_date",
    "asserted", "subscription_start_date", "subscription_end_date",
]


class SubscriptionDetector:
    """
    Detects subscriptions in transaction data.

    Usage:
        detector = SubscriptionDetector()
        subscriptions = detector.detect(transactions)
    """

    def __init__(self, config: dict | None = None):
        self.config = config or get_subscription_detection_config()
        self.min_occurrences = self.config["min_occurrences"]
        self.asserted_min_occurrences = self.config["asserted_min_occurrences"]
        self.frequency_bands = self.config["frequency_bands"]
        self.monthly_tolerance_bands = self.config["monthly_tolerance_bands"]

    # -------------------------------------------------------------------------
    # PUBLIC INTERFACE
    # -------------------------------------------------------------------------

    def detect(self, transactions: Iterable[Transaction], today: date | None = None) -> List[Subscription]:
        """
        Run subscription detection on a transaction list.

        Args:
            transactions: Transactions of any type; income is ignored.
            today: Reference date for deciding whether a flagged subscription
                has been cancelled. Defaults to date.today().

        Returns:
            List of Subscription, one per qualifying (merchant, category)
            group, de-duplicated by (name, category).
        """
        today = today or date.today()
        df = self._prepare(transactions, today)

        if df.empty:
            return []

        # sort=False keeps first-appearance order: flagged pool first
        grouped = df.groupby(["merchant_key", "category"], sort=False, dropna=False)
        results: List[Subscription] = []

        for (merchant, category), group in grouped:
            subscription = self._build_subscription(merchant or None, category, group)
            if subscription is not None:
                results.append(subscription)

        return self._dedupe(results)

    # -------------------------------------------------------------------------
    # INTERNAL: DATA PREPARATION
    # -------------------------------------------------------------------------

    def _prepare(self, transactions: Iterable[Transaction], today: date) -> pd.DataFrame:
        """
        Splits expenses into the active-flagged pool and everything else, and
        flattens both into one frame, flagged rows first.

        Flagged-but-cancelled transactions land in the second pool so their
        history still counts toward pattern mining.
        """
        asserted_rows, regular_rows = [], []

        for t in transactions:
            if not t.is_expense or t.date is None:
                continue
            active_flag = t.is_subscription and not _is_cancelled(t, today)
            row = {
                "transaction_id": t.id,
                "merchant_key": t.merchant or "",
                "category": t.category or "",
                "amount": float(t.amount),
                "transaction_date": pd.Timestamp(t.date),
                "asserted": active_flag,
                "subscription_start_date": t.subscription_start_date,
                "subscription_end_date": t.subscription_end_date,
            }
            (asserted_rows if active_flag else regular_rows).append(row)

        return pd.DataFrame(asserted_rows + regular_rows, columns=_COLUMNS)

    # -------------------------------------------------------------------------
    # INTERNAL: SUBSCRIPTION CONSTRUCTION
    # -------------------------------------------------------------------------

    def _build_subscription(self, merchant: str | None, category: str, group: pd.DataFrame) -> Subscription | None:
        """
        Builds a Subscription from one (merchant, category) group.

        Returns None if the group lacks evidence, has inconsistent amounts, or
        recurs too often to be a subscription.
        """
        asserted = bool(group["asserted"].any())

        # --- Occurrence gate ---
        needed = self.asserted_min_occurrences if asserted else self.min_occurrences
        if len(group) < needed:
            return None

        group = group.sort_values("transaction_date", kind="mergesort")

        # --- Amount consistency ---
        amounts = group["amount"].to_numpy(dtype=float)
        mean_amt = float(np.mean(amounts))
        if not (asserted and len(amounts) == 1):
            if not self._amounts_consistent(amounts, mean_amt, asserted):
                return None

        # --- Interval inference ---
        dates = group["transaction_date"].to_numpy()
        gaps = np.diff(dates).astype("timedelta64[D]").astype(float)
        if len(gaps) == 0:
            if not asserted:
                return None
            mean_gap = float(self.config["default_interval_days"])
        else:
            mean_gap = float(np.mean(gaps))

        frequency = self._classify_frequency(mean_gap, asserted)
        if frequency is None:
            return None

        # --- Billing dates ---
        last_date = group["transaction_date"].iloc[-1].date()
        step = relativedelta(months=1) if frequency == "monthly" else relativedelta(years=1)
        first_row = group.iloc[0]

        return Subscription(
            id=_subscription_id(merchant, category),
            name=merchant or category,
            amount=round(mean_amt, 2),
            category=category,
            frequency=frequency,
            next_billing_date=last_date + step,
            detected_from=group["transaction_id"].tolist(),
            subscription_start_date=_optional(first_row["subscription_start_date"]),
            subscription_end_date=_optional(first_row["subscription_end_date"]),
        )

    def _amounts_consistent(self, amounts: np.ndarray, mean_amt: float, asserted: bool) -> bool:
        """Every amount must sit within the variance band around the mean."""
        if mean_amt > self.config["negligible_mean"]:
            threshold = self.config["asserted_amount_variance"] if asserted else self.config["amount_variance"]
            deviations = np.abs(amounts - mean_amt) / mean_amt
            return bool(np.all(deviations < threshold))
        # Mean too small for a relative test: require identical amounts
        return bool(np.all(amounts == amounts[0]))

    # -------------------------------------------------------------------------
    # INTERNAL: FREQUENCY
    # -------------------------------------------------------------------------

    def _classify_frequency(self, mean_gap: float, asserted: bool) -> str | None:
        """
        Maps a mean interval in days to "monthly" / "yearly", or None to reject.

        Bands are tested in order: monthly, yearly, monthly tolerance bands,
        the too-frequent cutoff, then a monthly default for everything else.
        """
        if _in_band(mean_gap, self.frequency_bands["monthly"]):
            return "monthly"
        if _in_band(mean_gap, self.frequency_bands["yearly"]):
            return "yearly"
        if any(_in_band(mean_gap, band) for band in self.monthly_tolerance_bands):
            return "monthly"
        if mean_gap < self.config["min_interval_days"]:
            return "monthly" if asserted else None
        return "monthly"

    @staticmethod
    def _dedupe(subscriptions: List[Subscription]) -> List[Subscription]:
        """Keeps the first subscription per (name, category); amount is ignored."""
        seen = set()
        unique = []
        for sub in subscriptions:
            key = (sub.name, sub.category)
            if key in seen:
                continue
            seen.add(key)
            unique.append(sub)
        return unique


# =============================================================================
# MODULE-LEVEL HELPERS
# =============================================================================

def detect_subscriptions(transactions: Iterable[Transaction], today: date | None = None) -> List[Subscription]:
    """Shortcut: run a config-backed SubscriptionDetector."""
    return SubscriptionDetector().detect(transactions, today=today)


def cancel_subscription(
    transactions: Iterable[Transaction], subscription: Subscription, today: date | None = None
) -> List[Transaction]:
    """
    Marks a subscription cancelled by end-dating its source transactions.

    Returns a new list; the store persists it. Once today has passed, the
    detector treats those transactions as history rather than an active flag.
    """
    today = today or date.today()
    source_ids = set(subscription.detected_from)
    return [
        replace(t, subscription_end_date=today) if t.id in source_ids else t
        for t in transactions
    ]


def _is_cancelled(t: Transaction, today: date) -> bool:
    return t.subscription_end_date is not None and t.subscription_end_date < today


def _in_band(value: float, band: dict) -> bool:
    return band["min_gap_days"] <= value <= band["max_gap_days"]


def _subscription_id(merchant: str | None, category: str) -> str:
    """
    Readable id for a (merchant, category) key.

    "_" separates the parts, so "~" and "_" inside a part are escaped as
    "~~" and "~_"; distinct keys always give distinct ids.
    """
    if merchant:
        return f"sub_{_escape_id_part(merchant)}_{_escape_id_part(category)}"
    return f"sub_{_escape_id_part(category)}"


def _escape_id_part(part: str) -> str:
    return part.replace("~", "~~").replace("_", "~_")


def _optional(value):
    """Turns pandas' missing markers back into None."""
    if value is None:
        return None
    try:
        return None if pd.isna(value) else value
    except (TypeError, ValueError):
        return value
