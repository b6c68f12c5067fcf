"""アプリ全体で共通利用するエラー定義。"""
from __future__ import annotations

from dataclasses import dataclass, replace
from functools import lru_cache
from pathlib import Path
from typing import Any, Mapping

import yaml


_SUPPORT_DOC = "docs/trend_analyzer_運用ガイド.md"


DEFAULT_ERROR_CATALOG: Mapping[str, dict[str, str]] = {
    "E-CSV-NOTFOUND": {
        "message": "ウォッチリストCSVが見つかりません。",
        "guidance": "ファイルパスとアクセス権を確認し、必要に応じてフルパスを指定してください。",
        "support_url": _SUPPORT_DOC,
    },
    "E-CSV-ENCODING": {
        "message": "ウォッチリストCSVを読み込めませんでした。",
        "guidance": "UTF-8 (BOM 可) 形式で保存されているか確認してください。",
        "support_url": _SUPPORT_DOC,
    },
    "E-CSV-EMPTY": {
        "message": "CSVに有効なティッカーがありません。",
        "guidance": "ヘッダー行とティッカー列 (ticker / symbol) が含まれているか確認してください。",
        "support_url": _SUPPORT_DOC,
    },
    "E-CSV-UNKNOWN": {
        "message": "CSVの読み込みに失敗しました。",
        "guidance": "フォーマットとファイルの整合性を確認してください。",
        "support_url": _SUPPORT_DOC,
    },
    "E-YF-404": {
        "message": "価格データを取得できませんでした。",
        "guidance": "ティッカーが正しいか確認し、取引所サフィックス（例: .ST）も含めて指定してください。",
        "support_url": "https://pypi.org/project/yfinance/",
    },
    "E-DATA-SHORT": {
        "message": "解析に必要な価格履歴が不足しています。",
        "guidance": "200営業日以上の日足が必要です。上場直後の銘柄や基準日を確認してください。",
        "support_url": _SUPPORT_DOC,
    },
    "E-ARG-DATE": {
        "message": "基準日の形式が正しくありません。",
        "guidance": "YYYY-MM-DD 形式で実在する日付を指定してください。",
        "support_url": _SUPPORT_DOC,
    },
    "E-ARG-WEEKEND": {
        "message": "基準日が週末です。",
        "guidance": "市場は週末に開いていません。平日を指定してください。",
        "support_url": _SUPPORT_DOC,
    },
    "E-EXPORT": {
        "message": "レポートの書き出しに失敗しました。",
        "guidance": "出力先フォルダの書き込み権限と空き容量を確認してください。",
        "support_url": _SUPPORT_DOC,
    },
    "E-ANL-UNEXPECTED": {
        "message": "解析中にエラーが発生しました。",
        "guidance": "ログの詳細を確認し、問題のある銘柄を再取得または除外してください。",
        "support_url": _SUPPORT_DOC,
    },
    "E-UNEXPECTED": {
        "message": "予期しないエラーが発生しました。",
        "guidance": "ログを確認し、再実行しても改善しない場合は開発者に問い合わせてください。",
        "support_url": _SUPPORT_DOC,
    },
}


@lru_cache()
def _load_support_links(config_path: Path = Path("config.yaml")) -> dict[str, str]:
    try:
        data = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError):
        return {}
    links = data.get("support_links") if isinstance(data, dict) else None
    return {str(k): str(v) for k, v in links.items()} if isinstance(links, dict) else {}


@lru_cache()
def _load_error_support_map(config_path: Path = Path("config.yaml")) -> dict[str, str]:
    try:
        data = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError):
        return {}
    app_cfg = data.get("app") if isinstance(data, dict) else None
    mapping = app_cfg.get("error_support") if isinstance(app_cfg, dict) else None
    return {str(k): str(v) for k, v in mapping.items()} if isinstance(mapping, dict) else {}


@dataclass(slots=True)
class AppError(Exception):
    """コード付きのアプリケーションエラー。"""

    code: str
    user_message: str | None = None
    detail: str | None = None
    symbol: str | None = None
    payload: dict[str, Any] | None = None
    guidance: str | None = None
    support_url: str | None = None

    def __post_init__(self) -> None:
        meta = DEFAULT_ERROR_CATALOG.get(self.code, {})
        if not self.user_message:
            self.user_message = meta.get("message", "エラーが発生しました。")
        if self.guidance is None:
            self.guidance = meta.get("guidance")
        if self.support_url is None:
            self.support_url = _resolve_support_url(self.code, meta.get("support_url"))

    def __str__(self) -> str:
        base = self.headline()
        if self.detail:
            return f"{base} ({self.detail})"
        return base

    def for_log(self) -> str:
        base = str(self)
        if self.payload:
            return f"{base} | payload={self.payload}"
        return base

    def with_symbol(self, symbol: str) -> "AppError":
        return replace(self, symbol=symbol)

    def headline(self) -> str:
        message = self.user_message or "エラーが発生しました。"
        header = f"[{self.code}] {message}"
        if self.symbol:
            header = f"{self.symbol}: {header}"
        return header

    def help_text(self) -> str:
        parts: list[str] = []
        if self.guidance:
            parts.append(self.guidance)
        if self.support_url:
            parts.append(f"サポート: {self.support_url}")
        if self.detail:
            parts.append(f"詳細情報: {self.detail}")
        return "\n".join(parts)


def app_error(code: str, **kwargs: Any) -> AppError:
    """カタログに基づき AppError を生成する。"""

    return AppError(code=code, **kwargs)


def ensure_app_error(
    exc: Exception,
    *,
    code: str = "E-UNEXPECTED",
    message: str | None = None,
    symbol: str | None = None,
) -> AppError:
    """任意の例外を AppError へ正規化する。"""

    if isinstance(exc, AppError):
        return exc
    info = DEFAULT_ERROR_CATALOG.get(code, {})
    user_message = message or info.get("message", "予期しないエラーが発生しました。")
    return AppError(
        code=code,
        user_message=user_message,
        detail=str(exc) or None,
        symbol=symbol,
        guidance=info.get("guidance"),
        support_url=_resolve_support_url(code, info.get("support_url")),
    )


def _resolve_support_url(code: str, default_url: str | None) -> str | None:
    mapping = _load_error_support_map()
    links = _load_support_links()
    ref = mapping.get(code)
    if ref:
        return links.get(ref, default_url)
    return default_url
