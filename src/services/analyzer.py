"""価格取得とトレンド解析を束ねるサービス層。"""
from __future__ import annotations

import logging
import math
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Iterable, Sequence

import pandas as pd
import yfinance as yf
import yaml

from analysis.pipeline import analyze_as_of
from data.store import PricesRepo
from domain.models import ReportRecord, SymbolRecord
from domain.errors import AppError, app_error, ensure_app_error
from domain.settings import AnalysisConfig
from io_utils.markets import infer_market, normalize_symbol

logger = logging.getLogger(__name__)

# 長期移動平均と月足指標のウォームアップ用に取得期間へ上乗せする日数
WARMUP_DAYS = 300


@dataclass(slots=True)
class AnalyzerSettings:
    lookback_years: float = 2.0
    parallel_workers: int = 5
    retry_attempts: int = 2
    retry_backoff: float = 1.6


def _safe_int(value, fallback: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return fallback


def _safe_float(value, fallback: float) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return fallback


def load_config(config_path: Path = Path("config.yaml")) -> dict[str, Any]:
    try:
        raw = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError):
        logger.debug("Failed to load config from %s", config_path)
        return {}
    return raw if isinstance(raw, dict) else {}


def _settings_from_config(raw: dict[str, Any]) -> AnalyzerSettings:
    defaults = AnalyzerSettings()
    fetch_cfg = raw.get("fetch", {}) if isinstance(raw.get("fetch"), dict) else {}
    retry_cfg = fetch_cfg.get("retry", {}) if isinstance(fetch_cfg.get("retry"), dict) else {}

    return AnalyzerSettings(
        lookback_years=_safe_float(fetch_cfg.get("lookback_years"), defaults.lookback_years),
        parallel_workers=max(1, _safe_int(fetch_cfg.get("parallel_max"), defaults.parallel_workers)),
        retry_attempts=_safe_int(retry_cfg.get("max_attempts"), defaults.retry_attempts),
        retry_backoff=_safe_float(retry_cfg.get("backoff"), defaults.retry_backoff),
    )


def backtest_dates(as_of: date) -> list[date]:
    """基準日の月初から基準日までの平日を返す。"""
    days: list[date] = []
    current = as_of.replace(day=1)
    while current <= as_of:
        if current.weekday() < 5:
            days.append(current)
        current += timedelta(days=1)
    return days


class AnalyzerService:
    """銘柄集合に対するデータ取得とトレンド解析を提供する。"""

    def __init__(
        self,
        repo: PricesRepo | None = None,
        settings: AnalyzerSettings | None = None,
        config: AnalysisConfig | None = None,
        config_path: Path = Path("config.yaml"),
    ) -> None:
        raw = load_config(config_path) if settings is None or config is None else {}
        self.repo = repo or PricesRepo.from_config(config_path)
        self.settings = settings or _settings_from_config(raw)
        self.config = config or AnalysisConfig.from_mapping(raw)
        self._errors: list[AppError] = []

    # -- 公開API -----------------------------------------------------------------
    def load_watchlist(self, path: Path) -> list[SymbolRecord]:
        from io_utils.csv_loader import load_symbols  # 循環依存回避のためローカルインポート

        try:
            records = load_symbols(path)
        except AppError:
            raise
        except Exception as exc:
            raise ensure_app_error(
                exc,
                code="E-CSV-UNKNOWN",
                message="CSVの読み込みに失敗しました",
            ) from exc
        return [self._with_known_name(record) for record in records]

    def resolve_symbols(self, tickers: Iterable[str] = ()) -> list[SymbolRecord]:
        """ティッカー指定が無ければ設定の既定リストを使う。"""
        cleaned = [normalize_symbol(t) for t in tickers if t and t.strip()]
        if not cleaned:
            return [
                SymbolRecord(symbol=symbol, name=name, market=infer_market(symbol))
                for symbol, name in self.config.tickers.items()
            ]
        return [
            self._with_known_name(SymbolRecord(symbol=symbol, market=infer_market(symbol)))
            for symbol in dict.fromkeys(cleaned)
        ]

    def analyze_symbols(
        self,
        symbols: Iterable[SymbolRecord],
        as_of_dates: Sequence[date],
        *,
        force_refresh: bool = False,
    ) -> list[ReportRecord]:
        """各銘柄を基準日ごとに解析し、日付昇順で返す。"""
        self._errors.clear()
        results: list[ReportRecord] = []

        records = list(symbols)
        dates = sorted(set(as_of_dates))
        total = len(records)
        if total == 0 or not dates:
            return results

        logger.info(
            "Starting analysis for %d symbols over %d dates (force_refresh=%s)",
            total,
            len(dates),
            force_refresh,
        )

        with ThreadPoolExecutor(max_workers=self.settings.parallel_workers) as exe:
            future_map = {
                exe.submit(self._analyze_symbol_safe, record, dates, force_refresh): record
                for record in records
            }
            for future in as_completed(future_map):
                record = future_map[future]
                try:
                    results.extend(future.result())
                except Exception as exc:
                    app_err = ensure_app_error(
                        exc,
                        code="E-ANL-UNEXPECTED",
                        message="解析中にエラーが発生しました",
                    ).with_symbol(record.symbol)
                    self._record_error(app_err)
        results.sort(key=lambda r: (r.date, r.ticker))
        logger.info(
            "Analysis finished: %d records, %d errors", len(results), len(self._errors)
        )
        return results

    @property
    def errors(self) -> Sequence[str]:
        return self._formatted_errors()

    def analyze_symbol(
        self,
        record: SymbolRecord,
        as_of_dates: Sequence[date],
        *,
        force_refresh: bool = False,
    ) -> list[ReportRecord]:
        dates = sorted(as_of_dates)
        start = self.window_start(dates[0])
        end = dates[-1]
        df = self._ensure_prices(record.symbol, start, end, force_refresh=force_refresh)
        if df is None or len(df) < self.config.min_history:
            raise app_error(
                "E-DATA-SHORT",
                symbol=record.symbol,
                detail=f"{0 if df is None else len(df)} candles",
            )
        reports: list[ReportRecord] = []
        seen: set[date] = set()
        for as_of in dates:
            report = analyze_as_of(df, as_of, record.symbol, record.name, self.config)
            if report is None:
                logger.info("No report for %s as of %s", record.symbol, as_of)
                continue
            # 休場日は直前の営業日と同じ足になる
            if report.date in seen:
                logger.debug("Skip duplicate %s record for %s (as of %s)", record.symbol, report.date, as_of)
                continue
            seen.add(report.date)
            reports.append(report)
        return reports

    def window_start(self, as_of: date) -> date:
        days = math.ceil(self.settings.lookback_years * 365.25) + WARMUP_DAYS
        return as_of - timedelta(days=days)

    # -- 内部処理 -----------------------------------------------------------------
    def _with_known_name(self, record: SymbolRecord) -> SymbolRecord:
        if record.name:
            return record
        name = self.config.tickers.get(record.symbol, "")
        return SymbolRecord(
            symbol=record.symbol,
            name=name,
            sector=record.sector,
            market=record.market or infer_market(record.symbol),
        )

    def _ensure_prices(
        self,
        symbol: str,
        start: date,
        end: date,
        *,
        force_refresh: bool = False,
    ) -> pd.DataFrame | None:
        cached = self.repo.get_range(symbol, start, end)
        if not cached.empty and not force_refresh:
            if self._covers(cached, start, end):
                return cached
        try:
            fetched = self._fetch_from_yfinance(symbol, start, end)
        except AppError as err:
            if not cached.empty and not force_refresh:
                logger.warning(
                    "Using cached prices for %s after fetch failure: %s",
                    symbol,
                    err.for_log(),
                )
                self._record_error(err.with_symbol(symbol))
                return cached
            raise err
        self.repo.upsert_prices(symbol, fetched)
        merged = self.repo.get_range(symbol, start, end)
        return merged if not merged.empty else cached

    def _fetch_from_yfinance(self, symbol: str, start: date, end: date) -> pd.DataFrame:
        try:
            df = self._download_with_retry(symbol, start, end)
        except AppError:
            raise
        except Exception as exc:  # ネットワーク障害等
            logger.exception("yfinance download failed for %s", symbol)
            raise app_error("E-YF-404", detail=str(exc) or None, symbol=symbol) from exc
        if df is None or df.empty:
            logger.info("yfinance returned no data for %s", symbol)
            raise app_error("E-YF-404", symbol=symbol)
        df = df.reset_index()  # Date列を明示化
        # MultiIndexカラムをフラット化
        if isinstance(df.columns, pd.MultiIndex):
            df.columns = df.columns.get_level_values(0)
        df = df.rename(columns={col: str(col) for col in df.columns})
        df = self._drop_incomplete(df)
        df = self._sanitize_ohlc(df)
        if df.empty:
            raise app_error("E-YF-404", symbol=symbol, detail="no complete OHLC rows")
        return df

    def _download_with_retry(self, symbol: str, start: date, end: date) -> pd.DataFrame | None:
        import time

        attempt = 0
        delay = 1.0
        last_exc: Exception | None = None
        while attempt <= self.settings.retry_attempts:
            try:
                return yf.download(
                    symbol,
                    start=start.isoformat(),
                    end=(end + timedelta(days=1)).isoformat(),  # end は排他的
                    interval="1d",
                    auto_adjust=False,
                    progress=False,
                    threads=False,
                )
            except Exception as exc:
                last_exc = exc
                attempt += 1
                if attempt > self.settings.retry_attempts:
                    break
                logger.warning("Retrying download for %s (%d): %s", symbol, attempt, exc)
                time.sleep(delay)
                delay *= self.settings.retry_backoff
        if last_exc:
            raise app_error("E-YF-404", detail=str(last_exc), symbol=symbol) from last_exc
        return None

    def _analyze_symbol_safe(
        self,
        record: SymbolRecord,
        as_of_dates: Sequence[date],
        force_refresh: bool,
    ) -> list[ReportRecord]:
        try:
            return self.analyze_symbol(record, as_of_dates, force_refresh=force_refresh)
        except AppError:
            raise
        except Exception as exc:
            logger.exception("Unexpected failure while analyzing %s", record.symbol)
            raise ensure_app_error(
                exc,
                code="E-ANL-UNEXPECTED",
                message="解析中に予期しないエラーが発生しました",
            ) from exc

    def _record_error(self, err: AppError) -> None:
        self._errors.append(err)
        logger.error(err.for_log())

    def _formatted_errors(self) -> tuple[str, ...]:
        return tuple(str(err) for err in self._errors)

    @staticmethod
    def _drop_incomplete(df: pd.DataFrame) -> pd.DataFrame:
        cols = [c for c in ("Open", "High", "Low", "Close", "open", "high", "low", "close") if c in df.columns]
        if not cols:
            return df
        return df.dropna(subset=cols).reset_index(drop=True)

    @staticmethod
    def _sanitize_ohlc(df: pd.DataFrame) -> pd.DataFrame:
        cols = ["Open", "High", "Low", "Close", "Adj Close", "open", "high", "low", "close"]
        present = [c for c in cols if c in df.columns]
        if not present:
            return df
        ohlc = df[present].copy()
        min_positive = ohlc[ohlc > 0].min().min()
        if pd.isna(min_positive) or min_positive <= 0:
            return df
        for col in present:
            df[col] = df[col].where(df[col] > 0, min_positive)
        return df

    @staticmethod
    def _covers(df: pd.DataFrame, start: date, end: date) -> bool:
        """キャッシュが要求期間をほぼ覆っているか（週末・祝日分の余裕を見る）。"""
        if "date" not in df.columns or df.empty:
            return False
        first = pd.Timestamp(df["date"].iloc[0]).date()
        last = pd.Timestamp(df["date"].iloc[-1]).date()
        today = datetime.now(timezone.utc).date()
        horizon = min(end, today)
        return first <= start + timedelta(days=7) and last >= horizon - timedelta(days=3)
