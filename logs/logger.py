# logs/logger.py

import csv
import logging
import sys
from pathlib import Path
from typing import Optional

from execution.position import Trade


LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )


class TradeLogger:
    """
    Append-only CSV journal of closed trades.
    """

    HEADERS = [
        "time",
        "trade_id",
        "symbol",
        "side",
        "entry_price",
        "exit_price",
        "qty",
        "pnl",
        "pnl_percent",
        "fee",
        "balance",
        "reason",
    ]

    def __init__(self, path: str = "data_outputs/trades.csv"):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

        if not self.path.exists():
            self._write_header()
        else:
            self._upgrade_schema_if_needed()

    def _write_header(self) -> None:
        with self.path.open("w", newline="") as f:
            csv.writer(f).writerow(self.HEADERS)

    def _upgrade_schema_if_needed(self) -> None:
        with self.path.open("r", newline="") as f:
            rows = list(csv.reader(f))

        if not rows:
            self._write_header()
            return
        if rows[0] == self.HEADERS:
            return

        # older journals: map columns by name, blank the missing ones
        old = rows[0]
        upgraded = [self.HEADERS]
        for row in rows[1:]:
            record = dict(zip(old, row))
            upgraded.append([record.get(h, "") for h in self.HEADERS])

        with self.path.open("w", newline="") as f:
            csv.writer(f).writerows(upgraded)

    def log(self, trade: Trade, balance: Optional[float] = None) -> None:
        if balance is None:
            balance = trade.cumulative_balance

        with self.path.open("a", newline="") as f:
            csv.writer(f).writerow([
                trade.exit_time.isoformat(),
                trade.id,
                trade.symbol,
                trade.side,
                round(trade.entry_price, 4),
                round(trade.exit_price, 4),
                round(trade.quantity, 8),
                round(trade.pnl, 6),
                round(trade.pnl_percent, 4),
                round(trade.fee, 6),
                "" if balance is None else round(balance, 6),
                trade.reason,
            ])
