"""ウォッチリストCSV（ticker,name,sector）を読み込むユーティリティ。"""
from __future__ import annotations

import csv
import re
from pathlib import Path
from typing import Iterator, List, Sequence

from domain.errors import app_error
from domain.models import SymbolRecord
from io_utils.markets import infer_market, normalize_symbol

TICKER_RE = re.compile(r"^[A-Za-z0-9\.\-_\^=]+$")

_COLUMN_ALIASES: dict[str, tuple[str, ...]] = {
    "symbol": ("ticker", "symbol", "銘柄コード", "ティッカー"),
    "name": ("name", "company", "銘柄名"),
    "sector": ("sector", "セクター"),
}


def _has_header(first_row: Sequence[str]) -> bool:
    headers = [(s or "").strip().lower() for s in first_row]
    if any(h in _COLUMN_ALIASES["symbol"] for h in headers):
        return True
    # 1列目がティッカーとして妥当ならデータ行とみなす
    return not TICKER_RE.match((first_row[0] or "").strip()) if first_row else True


def _column_index(headers: Sequence[str], key: str) -> int | None:
    aliases = _COLUMN_ALIASES[key]
    return next((i for i, h in enumerate(headers) if h in aliases), None)


def _cell(row: Sequence[str], idx: int | None) -> str:
    if idx is None or idx >= len(row):
        return ""
    return (row[idx] or "").strip()


def _rows(path: Path) -> Iterator[list[str]]:
    try:
        with path.open("r", encoding="utf-8-sig", newline="") as fh:
            for row in csv.reader(fh):
                if not row or not any(cell.strip() for cell in row):
                    continue
                if row[0].lstrip().startswith("#"):
                    continue
                yield row
    except FileNotFoundError as exc:
        raise app_error("E-CSV-NOTFOUND", detail=str(exc)) from exc
    except UnicodeDecodeError as exc:
        raise app_error("E-CSV-ENCODING", detail=str(exc)) from exc


def load_symbols(path: Path) -> List[SymbolRecord]:
    """CSVを読み込み `SymbolRecord` のリストとして返す。重複ティッカーは先勝ち。"""
    rows = _rows(path)
    first = next(rows, None)
    if first is None:
        raise app_error("E-CSV-EMPTY")

    if _has_header(first):
        headers = [(c or "").strip().lower() for c in first]
        idx_sym = _column_index(headers, "symbol") or 0
        idx_name = _column_index(headers, "name")
        idx_sec = _column_index(headers, "sector")
        body: Iterator[list[str]] = rows
    else:
        idx_sym, idx_name, idx_sec = 0, 1, 2
        body = _chain(first, rows)

    records: dict[str, SymbolRecord] = {}
    for row in body:
        symbol = normalize_symbol(_cell(row, idx_sym))
        if not symbol or symbol in records:
            continue
        records[symbol] = SymbolRecord(
            symbol=symbol,
            name=_cell(row, idx_name),
            sector=_cell(row, idx_sec),
            market=infer_market(symbol),
        )
    if not records:
        raise app_error("E-CSV-EMPTY")
    return list(records.values())


def _chain(first: list[str], rest: Iterator[list[str]]) -> Iterator[list[str]]:
    yield first
    yield from rest
