"""派生元（origin）ブランチの推定。

手順（先に成功したものを採用）:
1. reflog: 最古側から `branch: Created from X` を探す。X が HEAD なら、
   その時点のコミットを含むブランチから実名に解決する
2. merge-base: 基準ブランチ一覧のうち、共通祖先からの距離が最小のもの
3. どちらもダメなら OriginUndetermined

基準ブランチ一覧は設定から注入する（順序がタイブレークになる）。
書き込みは一切しない。
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from branch_tools.errors import OriginUndetermined
from branch_tools.git_ops import ReflogEntry

log = logging.getLogger(__name__)

DEFAULT_BASE_BRANCHES: tuple[str, ...] = ("develop", "main", "master")

SPECIAL_REFS = frozenset({"HEAD", "FETCH_HEAD", "ORIG_HEAD", "MERGE_HEAD"})

_CREATED_FROM = re.compile(r"branch: Created from (.+)")
_SHA_LIKE = re.compile(r"^[0-9a-f]{7,40}$", re.IGNORECASE)


class OriginGateway(Protocol):
    def reflog_entries(self, branch: str) -> Iterator[ReflogEntry]: ...

    def branches_containing(self, sha: str) -> list[str]: ...

    def ref_exists(self, name: str) -> bool: ...

    def merge_base_distance(self, base: str, branch: str) -> int | None: ...


class DetectionMethod(str, Enum):
    REFLOG = "reflog"
    MERGE_BASE = "merge-base"

    @property
    def label(self) -> str:
        return {
            DetectionMethod.REFLOG: "git reflog (branch creation history)",
            DetectionMethod.MERGE_BASE: "git merge-base (common ancestor)",
        }[self]


@dataclass(frozen=True)
class OriginDetectionResult:
    branch: str
    method: DetectionMethod
    evidence: str


def looks_like_sha(name: str) -> bool:
    return bool(_SHA_LIKE.match(name))


class OriginResolver:
    def __init__(
        self,
        git: OriginGateway,
        base_branches: Sequence[str] = DEFAULT_BASE_BRANCHES,
    ) -> None:
        self.git = git
        self.base_branches = tuple(base_branches)

    def resolve_origin(self, branch: str) -> OriginDetectionResult:
        result = self._from_reflog(branch) or self._from_merge_base(branch)
        if result is None:
            raise OriginUndetermined(f"unable to determine origin branch for '{branch}'")
        log.info("origin of %s: %s via %s", branch, result.branch, result.method.value)
        return result

    def is_valid_branch_name(self, name: str) -> bool:
        if not name or name in SPECIAL_REFS or looks_like_sha(name):
            return False
        return self.git.ref_exists(name)

    def _from_reflog(self, branch: str) -> OriginDetectionResult | None:
        # git は新しい順に返すので、最古から見るために反転する
        entries = list(self.git.reflog_entries(branch))
        for entry in reversed(entries):
            m = _CREATED_FROM.search(entry.message)
            if not m:
                continue

            candidate = m.group(1).strip()
            if candidate == "HEAD":
                candidate = self._resolve_head(entry.sha, exclude=branch) or candidate

            if self.is_valid_branch_name(candidate):
                return OriginDetectionResult(
                    branch=candidate,
                    method=DetectionMethod.REFLOG,
                    evidence=entry.line,
                )
            log.debug("reflog candidate rejected for %s: %s", branch, candidate)
            return None
        return None

    def _resolve_head(self, sha: str, *, exclude: str) -> str | None:
        """作成時点のコミットを含むブランチから、HEAD が指していたブランチを推定する。"""
        containing = self.git.branches_containing(sha)
        if not containing:
            return None

        for base in self.base_branches:
            if base in containing:
                return base

        for name in containing:
            if name == exclude or name in SPECIAL_REFS or name.startswith("("):
                continue
            if looks_like_sha(name):
                continue
            if self.git.ref_exists(name):
                return name
        return None

    def _from_merge_base(self, branch: str) -> OriginDetectionResult | None:
        best: str | None = None
        best_distance: int | None = None

        for base in self.base_branches:
            if base == branch:
                continue
            distance = self.git.merge_base_distance(base, branch)
            # ref が無い、または共通祖先なし
            if distance is None:
                continue
            # 同距離なら一覧で先のものを残す
            if best_distance is None or distance < best_distance:
                best, best_distance = base, distance

        if best is None:
            return None
        return OriginDetectionResult(
            branch=best,
            method=DetectionMethod.MERGE_BASE,
            evidence=f"Closest: {best} (distance: {best_distance})",
        )
