"""
main.py
--------
Entry point for the Finance Analytics Engine.

Imports a CSV export, runs subscription detection, the end-of-month forecast
and spending insights, and writes output to the outputs/ folder.

Usage (from the project root):
    python main.py --input path/to/export.csv

    # With optional arguments:
    python main.py --input export.csv --balance 2450.00
    python main.py --input export.csv --today 2025-11-20
    python main.py --input transactions.json   # store export (camelCase records)
    python main.py --sample > sample.csv
"""

import sys
import os
import argparse
import json
import logging
from datetime import date, datetime

# Ensure project root is on path (for VS Code runs from any working directory)
PROJECT_ROOT = os.path.dirname(os.path.abspath(__file__))
sys.path.insert(0, PROJECT_ROOT)

from pipeline import FinancePipeline, PipelineResult
from core.forecast_engine import forecast_summary
from ingestion.csv_parser import generate_sample_csv, read_csv_file


# =============================================================================
# LOGGING SETUP
# =============================================================================

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("main")


# =============================================================================
# ARGUMENT PARSING
# =============================================================================

def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Finance Analytics Engine: detect subscriptions and forecast month-end balance."
    )
    parser.add_argument(
        "--input", type=str, default=None,
        help="Path to a transactions CSV export, or a .json store export."
    )
    parser.add_argument(
        "--balance", type=float, default=None,
        help="Current account balance. Defaults to the sum of imported transactions."
    )
    parser.add_argument(
        "--today", type=date.fromisoformat, default=None,
        help="Reference date (YYYY-MM-DD). Defaults to the system date."
    )
    parser.add_argument(
        "--output-dir", type=str, default=None,
        help="Output directory. Defaults to outputs/ in project root."
    )
    parser.add_argument(
        "--sample", action="store_true", default=False,
        help="Print an example CSV to stdout and exit."
    )
    return parser.parse_args(argv)


# =============================================================================
# MAIN
# =============================================================================

def main(argv=None):
    args = parse_args(argv)

    if args.sample:
        print(generate_sample_csv())
        return

    if not args.input:
        logger.error("No input file given. Use --input, or --sample for an example.")
        sys.exit(1)

    # --- Resolve paths ---
    output_dir = args.output_dir or os.path.join(PROJECT_ROOT, "outputs")
    os.makedirs(output_dir, exist_ok=True)

    # --- Load transactions ---
    logger.info(f"Loading transactions from: {args.input}")
    if not os.path.exists(args.input):
        logger.error(f"Input file not found: {args.input}")
        sys.exit(1)

    pipeline = FinancePipeline(today=args.today)
    try:
        transactions = _load_transactions(pipeline, args.input)
    except ValueError as e:
        logger.error(str(e))
        sys.exit(1)

    if not transactions:
        logger.error("No transactions could be imported.")
        sys.exit(1)

    # --- Run pipeline ---
    logger.info("Running analysis pipeline...")
    result = pipeline.run(transactions, current_balance=args.balance)

    # --- Output ---
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    subscriptions_path = os.path.join(output_dir, f"subscriptions_{timestamp}.csv")
    result.subscriptions.to_csv(subscriptions_path, index=False)
    logger.info(f"Subscriptions saved to: {subscriptions_path}")

    transactions_df = pipeline.serialize_transactions(transactions)
    transactions_path = os.path.join(output_dir, f"transactions_{timestamp}.csv")
    transactions_df.to_csv(transactions_path, index=False)
    logger.info(f"Transactions saved to: {transactions_path}")

    # Store-shaped copy, loadable again with --input
    store_path = os.path.join(output_dir, f"transactions_{timestamp}.json")
    with open(store_path, "w", encoding="utf-8") as f:
        json.dump(pipeline.export_records(transactions), f, indent=2)
    logger.info(f"Store records saved to: {store_path}")

    _print_summary(result, transactions_df)


def _load_transactions(pipeline: FinancePipeline, path: str) -> list:
    """
    Reads a .json store export or a CSV export.

    Raises:
        ValueError: If the JSON is malformed or not a list of records, or the
            CSV has no amount or date column.
    """
    if path.lower().endswith(".json"):
        with open(path, "r", encoding="utf-8") as f:
            records = json.load(f)
        if not isinstance(records, list):
            raise ValueError(f"Expected a JSON list of transaction records in {path}")
        return pipeline.load_records(records)

    imported = pipeline.import_csv(read_csv_file(path))
    return imported.transactions


def _print_summary(result: PipelineResult, transactions_df):
    """Prints a clean summary to the console."""
    forecast = result.forecast

    print("\n" + "=" * 80)
    print("  FINANCE SUMMARY")
    print("=" * 80)

    # Spend by category group
    expenses = transactions_df[transactions_df["type"] == "expense"]
    if not expenses.empty:
        print("\n  Spending by Category Group:")
        print("  " + "-" * 60)
        by_group = expenses.groupby("category_group")["amount"].sum().sort_values(ascending=False)
        for group, total in by_group.items():
            print(f"    {group:30s}  ${total:>12,.2f}")

    # Subscriptions
    print(f"\n  Subscriptions Detected: {len(result.subscriptions):,}")
    print("  " + "-" * 60)
    for _, sub in result.subscriptions.iterrows():
        print(f"    {sub['name']:30s}  ${sub['amount']:>9,.2f}  {sub['frequency']:8s}  next {sub['next_billing_date']}")

    # Forecast
    print("\n  Forecast:")
    print("  " + "-" * 60)
    print(f"    {forecast_summary(forecast)}")
    for line in forecast.insights:
        print(f"    - {line}")

    # Insights
    if result.insights:
        print("\n  Insights:")
        print("  " + "-" * 60)
        for insight in result.insights:
            print(f"    [{insight.severity.upper():7s}] {insight.message}")

    print("=" * 80 + "\n")


if __name__ == "__main__":
    main()
