"""logging の初期化。

- 詳細ログ: `~/.branch-tools/logs/branch-tools.log`
- 人間向けの表示は rich の Console（CLI 側）

hook から呼ばれるので画面には出さず、ファイルにだけ残す。
ログディレクトリが作れない（HOME が読み取り専用など）ときはファイルログなしで続ける。
"""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path


def default_log_root() -> Path:
    return Path.home() / ".branch-tools"


def setup_logging(*, root: Path | None = None, level: str = "INFO") -> None:
    # 既に設定済みなら二重設定しない
    if getattr(setup_logging, "_configured", False):
        return

    log_dir = (root or default_log_root()) / "logs"
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(
            log_dir / "branch-tools.log",
            maxBytes=2_000_000,
            backupCount=3,
            encoding="utf-8",
        )
    except OSError:
        return

    numeric_level = getattr(logging, level.upper(), logging.INFO)
    fmt = logging.Formatter(
        fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    handler.setFormatter(fmt)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.addHandler(handler)

    # noisy lib
    logging.getLogger("urllib3").setLevel(logging.WARNING)

    setup_logging._configured = True  # type: ignore[attr-defined]
