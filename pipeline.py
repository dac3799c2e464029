"""
pipeline.py
------------
Main orchestration layer. Wires together:
    1. CSV import           →  draft transactions with ids assigned
       or store records     →  transactions, legacy categories migrated
    2. SubscriptionDetector →  detected subscriptions
    3. ForecastEngine       →  end-of-month projection
    4. Spending insights    →  rule-based observations
    5. Output serialization →  pandas DataFrames for CSV export

This is the single entry point for running the engine end to end. Everything
else is internal machinery.

Usage:
    from pipeline import FinancePipeline

    pipeline = FinancePipeline()
    imported = pipeline.import_csv(raw_text)
    result = pipeline.run(imported.transactions, current_balance=1500.0)
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import date
from typing import List

import pandas as pd

from core.models import CSVColumnMapping, CSVParseResult, ForecastResult, Insight, Subscription, Transaction
from core.subscription_detector import SubscriptionDetector
from core.forecast_engine import ForecastEngine
from core.taxonomy import CategoryClassifier
from ingestion.csv_parser import auto_detect_columns, get_csv_headers, parse_csv_string, parse_csv_to_transactions
from insights.spending_insights import generate_insights

logger = logging.getLogger(__name__)


SUBSCRIPTION_COLUMNS = [
    "id", "name", "amount", "category", "frequency", "next_billing_date",
    "detected_from", "subscription_start_date", "subscription_end_date",
]

TRANSACTION_COLUMNS = [
    "id", "date", "amount", "type", "category", "category_group", "merchant", "note",
]


@dataclass
class PipelineResult:
    """Everything one run produces."""
    subscriptions: pd.DataFrame
    forecast: ForecastResult
    insights: List[Insight] = field(default_factory=list)


class FinancePipeline:
    """
    End-to-end import → detection → forecast pipeline.

    Orchestrates the stages without exposing internal objects to callers.
    """

    def __init__(self, today: date | None = None):
        """
        Args:
            today: Reference date for every date-relative stage. Defaults to
                date.today() at run time.
        """
        self.today = today
        self.classifier = CategoryClassifier()
        self.detector = SubscriptionDetector()
        self.forecaster = ForecastEngine()

        logger.info(f"Pipeline initialized. Categories: {len(self.classifier)}. Today: {self.today or 'system date'}.")

    # -------------------------------------------------------------------------
    # PUBLIC INTERFACE
    # -------------------------------------------------------------------------

    def import_csv(self, raw: str, mapping: CSVColumnMapping | None = None, id_prefix: str = "csv") -> CSVParseResult:
        """
        Import raw CSV text.

        Args:
            raw: Decoded file contents.
            mapping: Confirmed column mapping. Auto-detected from the headers if None.
            id_prefix: Prefix for the ids given to imported drafts.

        Raises:
            ValueError: If the mapping has no amount or date column.
        """
        headers = get_csv_headers(raw)
        mapping = mapping or auto_detect_columns(headers)
        if mapping.missing_required:
            raise ValueError(
                f"Missing required column mapping: {mapping.missing_required}. "
                f"Headers: {headers}"
            )

        rows = parse_csv_string(raw)
        result = parse_csv_to_transactions(rows, mapping, classifier=self.classifier)
        result.transactions = [
            replace(t, id=f"{id_prefix}_{n}") for n, t in enumerate(result.transactions, start=1)
        ]

        logger.info(
            f"CSV import complete. Rows: {result.total:,}. "
            f"Imported: {len(result.transactions):,}. Skipped: {result.skipped:,}."
        )
        for error in result.errors:
            logger.warning(error)
        if result.skipped > len(result.errors):
            logger.warning(f"... and {result.skipped - len(result.errors)} more issues.")

        return result

    def load_records(self, records: List[dict]) -> List[Transaction]:
        """
        Load transactions from store records (the app's JSON export).

        Legacy category labels are migrated to the current set. Records with
        an unreadable amount or no readable date are skipped and logged.
        """
        transactions = []
        for n, record in enumerate(records, start=1):
            try:
                txn = Transaction.from_dict(record)
            except (AttributeError, TypeError, ValueError) as e:
                logger.warning(f"Record {n}: skipped ({e}).")
                continue
            if txn.date is None:
                logger.warning(f"Record {n}: skipped (no readable date).")
                continue
            transactions.append(replace(txn, category=self.classifier.migrate_legacy_category(txn.category)))

        logger.info(f"Store load complete. Records: {len(records):,}. Loaded: {len(transactions):,}.")
        return transactions

    def run(self, transactions: List[Transaction], current_balance: float | None = None) -> PipelineResult:
        """
        Run detection, forecasting and insights over a transaction list.

        Returns:
            PipelineResult. Subscriptions are serialized to a DataFrame for export.
        """
        today = self.today or date.today()
        logger.info(f"Pipeline starting. Input: {len(transactions):,} transactions.")

        # --- Stage 1: Subscription detection ---
        subscriptions = self.detector.detect(transactions, today=today)
        logger.info(f"Stage 1 complete. Subscriptions: {len(subscriptions):,}.")

        # --- Stage 2: Forecast ---
        forecast = self.forecaster.forecast(transactions, current_balance=current_balance, today=today)
        logger.info(
            f"Stage 2 complete. Projected EOM balance: {forecast.projected_eom_balance:,.2f} "
            f"({forecast.confidence} confidence)."
        )

        # --- Stage 3: Spending insights ---
        insights = generate_insights(transactions, today=today)
        logger.info(f"Stage 3 complete. Insights: {len(insights):,}.")

        return PipelineResult(
            subscriptions=self.serialize_subscriptions(subscriptions),
            forecast=forecast,
            insights=insights,
        )

    # -------------------------------------------------------------------------
    # OUTPUT SERIALIZATION
    # -------------------------------------------------------------------------

    @staticmethod
    def serialize_subscriptions(subscriptions: List[Subscription]) -> pd.DataFrame:
        """Flat DataFrame, one row per subscription, highest amount first."""
        if not subscriptions:
            return pd.DataFrame(columns=SUBSCRIPTION_COLUMNS)

        rows = []
        for sub in subscriptions:
            record = sub.to_dict()
            record["detected_from"] = "|".join(str(x) for x in sub.detected_from)
            rows.append(record)

        df = pd.DataFrame(rows, columns=SUBSCRIPTION_COLUMNS)
        return df.sort_values(["amount", "name"], ascending=[False, True]).reset_index(drop=True)

    @staticmethod
    def export_records(transactions: List[Transaction]) -> List[dict]:
        """Store records (camelCase keys, ISO dates) ready for JSON."""
        return [t.to_dict() for t in transactions]

    def serialize_transactions(self, transactions: List[Transaction]) -> pd.DataFrame:
        """Flat DataFrame of transactions with their reporting group."""
        if not transactions:
            return pd.DataFrame(columns=TRANSACTION_COLUMNS)

        rows = [
            {
                "id": t.id,
                "date": t.date.isoformat() if t.date else None,
                "amount": t.amount,
                "type": t.type,
                "category": t.category,
                "category_group": self.classifier.category_group(t.category),
                "merchant": t.merchant or "",
                "note": t.note,
            }
            for t in transactions
        ]
        return pd.DataFrame(rows, columns=TRANSACTION_COLUMNS)
