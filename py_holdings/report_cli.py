import sys
import json
import argparse
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from .config_loader import load_config
from .csv_export import CsvReportGenerator
from .loader import load_dataset_file
from .notifications import NotificationDispatcher
from .portfolio import report_to_dict
from .reconciliation import ReconciliationLog
from .service import PortfolioService

# Setup Logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler(sys.stdout)]
)


class LogNotificationSender:
    """ Writes the payload to the log instead of delivering it. """

    def __init__(self):
        self.sent: List[Dict[str, Any]] = []

    def send(self, payload: Dict[str, Any]) -> None:
        self.sent.append(payload)
        logging.info(f"Notification payload: {json.dumps(payload, ensure_ascii=False)}")


def parse_as_of(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.strptime(value, "%Y-%m-%d")
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid --as-of date '{value}', expected YYYY-MM-DD")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Portfolio Holdings Report")
    parser.add_argument("--input", default="dataset.json", help="Input dataset JSON (default: dataset.json)")
    parser.add_argument("--output", default="report.json", help="Output report JSON (default: report.json)")
    parser.add_argument("--csv-dir", default=None, help="Directory for the dashboard CSV files (default: csv_dir from the config)")
    parser.add_argument("--config", default="portfolio_config.json", help="Config file (default: portfolio_config.json)")
    parser.add_argument("--as-of", type=parse_as_of, default=None, help="Valuation date YYYY-MM-DD (default: now)")
    parser.add_argument("--notify", action="store_true", help="Emit the portfolio notification payload")
    parser.add_argument("--force-notify", action="store_true", help="Notify even outside market hours")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.info("Starting Portfolio Report...")
    config = load_config(args.config)
    reconciliation = ReconciliationLog(config.reconciliation_dir)

    # 1. Load
    logging.info(f"Loading dataset: {args.input}")
    try:
        dataset = load_dataset_file(args.input, reconciliation)
    except (OSError, ValueError) as e:
        logging.error(f"Cannot read dataset {args.input}: {e}")
        return 1

    # 2. Aggregate
    service = PortfolioService(config, as_of=args.as_of, reconciliation=reconciliation)
    report = service.compute_report(dataset)

    # 3. Output
    output = report_to_dict(report)
    output["issues"] = [
        {"category": i.category, "ledger": i.ledger, "detail": i.detail} for i in reconciliation.issues
    ]
    with open(args.output, 'w', encoding='utf-8') as f:
        json.dump(output, f, indent=2, ensure_ascii=False)
    logging.info(f"Report written to {args.output}")

    csv_dir = args.csv_dir or config.csv_dir
    if csv_dir:
        CsvReportGenerator().write(report, csv_dir)

    if args.notify or args.force_notify:
        NotificationDispatcher(LogNotificationSender(), config).dispatch(report.summary, force=args.force_notify)

    s = report.summary
    logging.info(f"Summary - Market: ₹{s.total_market_value:.2f}, Invested: ₹{s.total_invested:.2f}, "
                 f"Profit: ₹{s.total_profit:.2f}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
