"""logging 初期化のテスト。"""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

import branch_tools.logging_setup as m


def test_setup_logging_writes_to_file(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setattr(m.setup_logging, "_configured", False, raising=False)
    root_logger = logging.getLogger()
    before = list(root_logger.handlers)
    try:
        m.setup_logging(root=tmp_path, level="DEBUG")
        m.setup_logging(root=tmp_path, level="DEBUG")
        added = [h for h in root_logger.handlers if h not in before]
        assert len(added) == 1
        assert isinstance(added[0], RotatingFileHandler)

        logging.getLogger("branch_tools.test").info("hello log")
        added[0].flush()
        text = (tmp_path / "logs" / "branch-tools.log").read_text(encoding="utf-8")
        assert "hello log" in text
    finally:
        for h in root_logger.handlers[:]:
            if h not in before:
                root_logger.removeHandler(h)
                h.close()


def test_setup_logging_without_writable_log_dir(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setattr(m.setup_logging, "_configured", False, raising=False)
    # root がファイルなので logs/ を作れない
    blocked = tmp_path / "not-a-dir"
    blocked.write_text("", encoding="utf-8")
    root_logger = logging.getLogger()
    before = list(root_logger.handlers)

    m.setup_logging(root=blocked)

    assert root_logger.handlers == before
    assert not (blocked / "logs").exists()
