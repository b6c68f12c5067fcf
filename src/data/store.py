"""DuckDBを利用した価格データ永続化層。"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import ClassVar
from datetime import date, datetime
import numpy as np
from threading import Lock

import duckdb
import pandas as pd
import yaml

logger = logging.getLogger(__name__)

DEFAULT_CACHE_PATH = Path("cache/prices.duckdb")


@dataclass(slots=True)
class PricesRepo:
    db_path: Path
    _schema_lock: ClassVar[Lock] = Lock()
    _prices_initialized: bool = field(default=False, init=False, repr=False)

    @classmethod
    def from_config(cls, config_path: Path = Path("config.yaml")) -> "PricesRepo":
        try:
            cfg = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
        except FileNotFoundError:
            logger.info("Config file %s not found, using %s", config_path, DEFAULT_CACHE_PATH)
            return cls(DEFAULT_CACHE_PATH)
        except (OSError, yaml.YAMLError):
            logger.exception("Failed to read config file: %s", config_path)
            raise
        try:
            cache_path = Path(cfg["cache"]["duckdb_path"])
        except (KeyError, TypeError):
            logger.warning("cache.duckdb_path is not set in %s, using %s", config_path, DEFAULT_CACHE_PATH)
            cache_path = DEFAULT_CACHE_PATH
        return cls(cache_path)

    # ------------------------------------------------------------------
    def _conn(self) -> duckdb.DuckDBPyConnection:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            return duckdb.connect(str(self.db_path))
        except Exception:
            logger.exception("Failed to connect to DuckDB: %s", self.db_path)
            raise

    def upsert_prices(self, symbol: str, df: pd.DataFrame, tz: str = "UTC") -> None:
        if df is None or df.empty:
            logger.debug("Skip upsert: empty dataframe for %s", symbol)
            return
        prepared = self._prepare_dataframe(df, symbol, tz)
        con = self._conn()
        try:
            self._ensure_prices_table(con)
            records = tuple(self._iter_price_rows(prepared))
            if not records:
                return
            con.executemany(
                "INSERT OR REPLACE INTO prices VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                records,
            )
        except Exception:
            logger.exception("Failed to upsert prices for %s", symbol)
            raise
        finally:
            con.close()

    def get_range(
        self,
        symbol: str,
        start: date | None = None,
        end: date | None = None,
    ) -> pd.DataFrame:
        sql = "SELECT date, open, high, low, close, volume FROM prices WHERE symbol=?"
        params: list[object] = [symbol]
        if start is not None:
            sql += " AND date >= ?"
            params.append(start)
        if end is not None:
            sql += " AND date <= ?"
            params.append(end)
        sql += " ORDER BY date"
        con = self._conn()
        try:
            self._ensure_prices_table(con)
            df = con.execute(sql, params).df()
        except Exception:
            logger.exception("Failed to fetch prices for %s", symbol)
            raise
        finally:
            con.close()
        if not df.empty:
            df["date"] = pd.to_datetime(df["date"])
        return df

    # ------------------------------------------------------------------
    @staticmethod
    def _prepare_dataframe(df: pd.DataFrame, symbol: str, tz: str) -> pd.DataFrame:
        prepared = df.copy()
        if "Date" in prepared.columns:
            prepared.rename(columns={"Date": "date"}, inplace=True)
        if "Adj Close" in prepared.columns and "Close" not in prepared.columns and "close" not in prepared.columns:
            prepared.rename(columns={"Adj Close": "close"}, inplace=True)
        prepared.rename(
            columns={
                "Open": "open",
                "High": "high",
                "Low": "low",
                "Close": "close",
                "Volume": "volume",
            },
            inplace=True,
        )
        if "date" not in prepared.columns and "index" in prepared.columns:
            prepared.rename(columns={"index": "date"}, inplace=True)
        if "date" not in prepared.columns:
            logger.error("DataFrame missing 'date' column for %s", symbol)
            raise ValueError("date column is required")
        prepared["symbol"] = symbol
        prepared["timezone"] = tz
        prepared = prepared.loc[:, ~prepared.columns.duplicated()]
        cols = [
            "symbol",
            "date",
            "open",
            "high",
            "low",
            "close",
            "volume",
            "timezone",
        ]
        missing_cols = [col for col in cols if col not in prepared.columns]
        if missing_cols:
            raise ValueError(f"Missing columns for upsert: {missing_cols}")
        return prepared[cols]

    def _ensure_prices_table(self, con: duckdb.DuckDBPyConnection) -> None:
        if self._prices_initialized:
            return
        with self._schema_lock:
            if self._prices_initialized:
                return
            con.execute(
                "CREATE TABLE IF NOT EXISTS prices ("
                "symbol TEXT, date DATE, open DOUBLE, high DOUBLE, low DOUBLE, "
                "close DOUBLE, volume DOUBLE, timezone TEXT, PRIMARY KEY(symbol, date))"
            )
            self._prices_initialized = True

    @staticmethod
    def _iter_price_rows(df: pd.DataFrame):
        for row in df.itertuples(index=False, name=None):
            (
                symbol,
                date_value,
                open_value,
                high_value,
                low_value,
                close_value,
                volume_value,
                timezone,
            ) = row
            yield (
                symbol,
                _as_date(date_value),
                _to_float(open_value),
                _to_float(high_value),
                _to_float(low_value),
                _to_float(close_value),
                _to_float(volume_value),
                timezone,
            )


def _as_date(value):
    if value is None:
        return None
    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime().date()
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return pd.to_datetime(value).date()
    except (TypeError, ValueError):
        return None


def _to_float(value):
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, np.generic):
        return float(value)
    try:
        return float(value)
    except (TypeError, ValueError):
        return None
