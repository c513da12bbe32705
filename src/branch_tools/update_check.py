"""新しいリリースの確認（GitHub Releases API）。

- ダウンロードや自己置き換えはしない。バージョン比較と通知だけ
- 自動チェックは1日1回まで（`~/.branch-tools/update-check.json` に記録）
"""

from __future__ import annotations

import datetime as dt
import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path

import requests

from branch_tools.errors import BranchToolsError, RemoteUnreachable

log = logging.getLogger(__name__)

USER_AGENT = "branch-tools-updater"


@dataclass(frozen=True)
class UpdateInfo:
    version: str
    tag: str
    url: str
    published_at: str | None
    update_available: bool


def parse_version(text: str) -> tuple[int, ...]:
    parts: list[int] = []
    for piece in text.strip().lstrip("vV").split("."):
        m = re.match(r"\d+", piece)
        if not m:
            break
        parts.append(int(m.group(0)))
    return tuple(parts)


def is_newer(latest: str, current: str) -> bool:
    return parse_version(latest) > parse_version(current)


def fetch_latest_release(url: str, timeout: float = 10) -> dict:
    r = requests.get(
        url,
        headers={"User-Agent": USER_AGENT, "Accept": "application/vnd.github.v3+json"},
        timeout=timeout,
    )
    r.raise_for_status()
    return r.json()


def check_for_update(current: str, url: str, timeout: float = 10) -> UpdateInfo:
    try:
        data = fetch_latest_release(url, timeout=timeout)
    except requests.RequestException as e:
        raise RemoteUnreachable(f"failed to fetch release information: {e}") from e
    except ValueError as e:
        raise RemoteUnreachable(f"failed to parse release information: {e}") from e

    tag = str(data.get("tag_name", ""))
    version = tag.lstrip("vV")
    return UpdateInfo(
        version=version,
        tag=tag,
        url=str(data.get("html_url", "")),
        published_at=data.get("published_at"),
        update_available=bool(version) and is_newer(version, current),
    )


def check_for_update_silently(current: str, url: str, timeout: float = 10) -> UpdateInfo | None:
    """hook の邪魔をしないよう、失敗は None にする。"""
    try:
        return check_for_update(current, url, timeout=timeout)
    except BranchToolsError as e:
        log.info("update check failed: %s", e)
        return None


def default_tracker_path() -> Path:
    return Path.home() / ".branch-tools" / "update-check.json"


@dataclass
class UpdateCheckTracker:
    path: Path

    def _load(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            return {}
        return raw if isinstance(raw, dict) else {}

    def _save(self, data: dict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, indent=2), encoding="utf-8")

    def should_check(self, today: dt.date | None = None) -> bool:
        today = today or dt.date.today()
        data = self._load()
        skip_until = data.get("skip_until")
        if skip_until and skip_until >= today.isoformat():
            return False
        return data.get("last_check") != today.isoformat()

    def mark_checked(self, today: dt.date | None = None) -> None:
        today = today or dt.date.today()
        self._save({"last_check": today.isoformat(), "skip_until": None})

    def skip_until_tomorrow(self, today: dt.date | None = None) -> None:
        today = today or dt.date.today()
        self._save({"last_check": today.isoformat(), "skip_until": today.isoformat()})
