"""解析結果（ReportRecord）をCSV・コンソール表へ出力するレポートシンク。"""
from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Callable, Iterable, Sequence

import pandas as pd

from domain.errors import app_error
from domain.models import ReportRecord, round2

logger = logging.getLogger(__name__)


def _common(r: ReportRecord) -> dict[str, object]:
    return {"Date": r.date.isoformat(), "Ticker": r.ticker}


def _technical(r: ReportRecord) -> dict[str, object]:
    return {
        **_common(r),
        "Close": round2(r.close),
        "BBHigh": round2(r.bollinger.upper),
        "BBLow": round2(r.bollinger.lower),
        "Supertrend": round2(r.supertrend),
        "ATR": round2(r.atr),
        "MFI": round2(r.mfi),
        "RsiD": round2(r.rsi.daily),
        "RsiW": round2(r.rsi.weekly),
        "RsiM": round2(r.rsi.monthly),
        "SwingHigh": round2(r.swing.high),
        "SwingLow": round2(r.swing.low),
        "Sma20": round2(r.sma20),
        "Sma50": round2(r.sma50),
        "Sma150": round2(r.sma150),
    }


def _trend_vsa(r: ReportRecord) -> dict[str, object]:
    return {
        **_common(r),
        "Close": round2(r.close),
        "Diff_BBLow_%": round2(r.diff_bb_low_pct),
        "Diff_BBHigh_%": round2(r.diff_bb_high_pct),
        "VsaDPrice": r.vsa_daily_price,
        "VsaWPrice": r.vsa_weekly_price,
        "VsaDVol": r.vsa_daily_volume,
        "VsaWVol": r.vsa_weekly_volume,
    }


def _trade_plan(r: ReportRecord) -> dict[str, object]:
    return {
        **_common(r),
        "entry": round2(r.plan.entry),
        "target": round2(r.plan.target),
        "stopLoss": round2(r.plan.stop),
        "shares": r.plan.shares,
        "AdxD": r.dmi_field("daily", "adx"),
        "PdiD": r.dmi_field("daily", "pdi"),
        "MdiD": r.dmi_field("daily", "mdi"),
        "adxAndDmiSignal": r.dmi_field("daily", "signal"),
        "TrendHealthD": r.dmi_field("daily", "trend_health"),
        "RSITrend": r.rsi_trend,
        "Setup": r.action.state.value,
        "Confidence": r.action.confidence,
        "PriceTrend": r.price_trend,
    }


GROUPS: tuple[tuple[str, Callable[[ReportRecord], dict[str, object]]], ...] = (
    ("Technical Indicators", _technical),
    ("Trend & VSA Analysis", _trend_vsa),
    ("Entry Target & SL", _trade_plan),
)


def records_frame(records: Iterable[ReportRecord]) -> pd.DataFrame:
    """統合レポート（全項目）の DataFrame。"""
    return pd.DataFrame([r.as_row() for r in records])


def group_frames(records: Sequence[ReportRecord]) -> list[tuple[str, pd.DataFrame]]:
    return [(title, pd.DataFrame([mapper(r) for r in records])) for title, mapper in GROUPS]


EXPORT_FORMATS = ("csv", "json")


def export_table(df: pd.DataFrame, path: str) -> None:
    lowered = path.lower()
    if lowered.endswith(".csv"):
        df.to_csv(path, index=False, encoding="utf-8-sig")
    elif lowered.endswith(".json"):
        df.to_json(path, force_ascii=False, orient="records", indent=2)
    else:
        raise ValueError("Unsupported export format")


def _slug(title: str) -> str:
    return re.sub(r"\s+", "_", title)


def save_reports(
    records: Sequence[ReportRecord],
    output_dir: Path,
    run_date: str,
    fmt: str = "csv",
) -> list[Path]:
    """グループ別の詳細表と、日付ごとの統合表を ``fmt`` 形式で書き出す。"""
    if fmt not in EXPORT_FORMATS:
        raise ValueError(f"Unsupported export format: {fmt}")
    if not records:
        return []
    written: list[Path] = []
    details = output_dir / "details"
    try:
        details.mkdir(parents=True, exist_ok=True)
        for index, (title, frame) in enumerate(group_frames(records), start=1):
            path = details / f"{run_date}_Group_{index}_{_slug(title)}.{fmt}"
            export_table(frame, str(path))
            written.append(path)

        consolidated = records_frame(records)
        for day, rows in consolidated.groupby("Date", sort=True):
            path = output_dir / f"{day}_Consolidated_Report.{fmt}"
            export_table(rows, str(path))
            logger.info("File saved: %s (%d entries)", path.name, len(rows))
            written.append(path)
    except OSError as exc:
        raise app_error("E-EXPORT", detail=str(exc) or None) from exc
    return written


def render_console(records: Sequence[ReportRecord]) -> str:
    """コンソール表示用のテキスト表。"""
    blocks: list[str] = []
    for index, (title, frame) in enumerate(group_frames(records), start=1):
        blocks.append(f"--- Group {index}: {title} ---")
        blocks.append(frame.to_string(index=False) if not frame.empty else "(no rows)")
        blocks.append("")
    return "\n".join(blocks)
