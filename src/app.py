from __future__ import annotations

import argparse
import logging
import re
import sys
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Sequence

from domain.errors import AppError, app_error
from export.exporter import EXPORT_FORMATS, render_console, save_reports
from services.analyzer import AnalyzerService, backtest_dates, load_config
from services.logging_setup import configure_logging

logger = logging.getLogger(__name__)

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


@dataclass(slots=True)
class RunRequest:
    """CLI引数を正規化した実行パラメータ。"""

    as_of: date
    tickers: tuple[str, ...] = field(default_factory=tuple)
    backtest: bool = False
    watchlist: Path | None = None

    def as_of_dates(self) -> list[date]:
        return backtest_dates(self.as_of) if self.backtest else [self.as_of]


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="マルチタイムフレーム・トレンドアナライザー")
    parser.add_argument(
        "tickers",
        nargs="*",
        help="解析するティッカー（省略時は config.yaml の既定リスト）。先頭に YES/NO、日付 YYYY-MM-DD も可",
    )
    parser.add_argument("--date", dest="as_of", default=None, help="基準日 (YYYY-MM-DD)。省略時は今日")
    parser.add_argument("--backtest", action="store_true", help="月初から基準日までの平日を順に解析する")
    parser.add_argument("--csv", type=Path, default=None, help="ウォッチリストCSV")
    parser.add_argument("--output", type=Path, default=None, help="レポート出力先フォルダ")
    parser.add_argument(
        "--format",
        dest="fmt",
        choices=EXPORT_FORMATS,
        default=None,
        help="レポート形式（省略時は config.yaml の report.format）",
    )
    parser.add_argument("--config", type=Path, default=Path("config.yaml"), help="設定ファイル")
    parser.add_argument("--force-refresh", action="store_true", help="キャッシュを無視して再取得する")
    return parser.parse_args(argv)


def parse_date(value: str) -> date:
    if not _DATE_RE.match(value or ""):
        raise app_error("E-ARG-DATE", detail=value)
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError as exc:
        raise app_error("E-ARG-DATE", detail=value) from exc


def resolve_request(args: argparse.Namespace, today: date | None = None) -> RunRequest:
    """位置引数の YES/NO・日付指定も受け付けて RunRequest を組み立てる。"""
    positional = list(args.tickers)
    backtest = bool(args.backtest)
    if positional and positional[0].upper() in ("YES", "NO"):
        backtest = backtest or positional.pop(0).upper() == "YES"
    as_of_raw = args.as_of
    if positional and _DATE_RE.match(positional[0]):
        as_of_raw = as_of_raw or positional[0]
        positional.pop(0)

    as_of = parse_date(as_of_raw) if as_of_raw else (today or date.today())
    if as_of.weekday() >= 5:
        raise app_error("E-ARG-WEEKEND", detail=as_of.isoformat())
    return RunRequest(
        as_of=as_of,
        tickers=tuple(positional),
        backtest=backtest,
        watchlist=args.csv,
    )


def report_format(cli_value: str | None, report_cfg: dict) -> str:
    """CLI指定 > config.yaml の report.format > csv の順で決める。"""
    if cli_value:
        return cli_value
    configured = str(report_cfg.get("format", "csv")).strip().lower()
    if configured not in EXPORT_FORMATS:
        logger.warning("Unknown report.format %r, using csv", configured)
        return "csv"
    return configured


def run(
    request: RunRequest,
    service: AnalyzerService,
    output_dir: Path,
    *,
    force_refresh: bool = False,
    fmt: str = "csv",
) -> int:
    symbols = service.load_watchlist(request.watchlist) if request.watchlist else []
    if request.tickers or not symbols:
        symbols.extend(service.resolve_symbols(request.tickers))
    records = service.analyze_symbols(symbols, request.as_of_dates(), force_refresh=force_refresh)
    for message in service.errors:
        print(message, file=sys.stderr)
    if not records:
        print(f"No data available for Date: {request.as_of.isoformat()}")
        return 1
    print(render_console(records))
    written = save_reports(records, output_dir, request.as_of.isoformat(), fmt)
    print(f"CONSOLIDATED MASTER REPORT SAVED: {len(written)} files in {output_dir}")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    configure_logging(args.config)
    try:
        request = resolve_request(args)
    except AppError as err:
        print(err.headline(), file=sys.stderr)
        print(err.help_text(), file=sys.stderr)
        return 2
    raw = load_config(args.config)
    report_cfg = raw.get("report", {}) if isinstance(raw.get("report"), dict) else {}
    output_dir = args.output or Path(str(report_cfg.get("output_dir", "stock_data")))
    fmt = report_format(args.fmt, report_cfg)
    try:
        service = AnalyzerService(config_path=args.config)
        return run(request, service, output_dir, force_refresh=args.force_refresh, fmt=fmt)
    except AppError as err:
        logger.error(err.for_log())
        print(err.headline(), file=sys.stderr)
        print(err.help_text(), file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
