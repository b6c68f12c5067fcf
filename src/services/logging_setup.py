"""logging設定を初期化するヘルパー。"""
from __future__ import annotations

import logging
import sys
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

import yaml


_CONFIGURED = False
_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(config_path: Path = Path("config.yaml"), *, console_level: str | None = None) -> None:
    """設定ファイルを元に logging を初期化する（ファイル + コンソール）。"""

    global _CONFIGURED
    if _CONFIGURED:
        return

    config: dict[str, object]
    try:
        config = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError):
        config = {}

    # サポートリンクのキャッシュは設定変更に追随できるようクリア
    from domain.errors import _load_support_links, _load_error_support_map

    _load_support_links.cache_clear()
    _load_error_support_map.cache_clear()

    logging_cfg = config.get("logging", {}) if isinstance(config, dict) else {}
    if not isinstance(logging_cfg, dict):
        logging_cfg = {}
    level_name = str(logging_cfg.get("level", "INFO"))
    level = getattr(logging, level_name.upper(), logging.INFO)
    log_path = Path(str(logging_cfg.get("path", "logs/app.log")))
    try:
        rotate_keep = int(logging_cfg.get("rotate_keep", 7))
    except (TypeError, ValueError):
        rotate_keep = 7
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
    except OSError:
        log_path = Path.cwd() / log_path.name

    logger = logging.getLogger()
    logger.setLevel(level)

    formatter = logging.Formatter(_FORMAT)

    file_handler = TimedRotatingFileHandler(
        filename=str(log_path),
        when="midnight",
        backupCount=max(rotate_keep, 0),
        encoding="utf-8",
        utc=False,
    )
    file_handler.setLevel(level)
    file_handler.setFormatter(formatter)

    console_handler = logging.StreamHandler(sys.stderr)
    console_name = (console_level or str(logging_cfg.get("console_level", "WARNING"))).upper()
    console_handler.setLevel(getattr(logging, console_name, logging.WARNING))
    console_handler.setFormatter(formatter)

    # 既存ハンドラを削除して二重登録を防ぐ
    for handler in list(logger.handlers):  # pragma: no cover - 初期化時のみ
        logger.removeHandler(handler)
        handler.close()

    logger.addHandler(file_handler)
    logger.addHandler(console_handler)

    # yfinance はエラー時に冗長なログを出すため抑制する
    logging.getLogger("yfinance").setLevel(logging.CRITICAL)

    _CONFIGURED = True
