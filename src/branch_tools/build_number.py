"""build.txt の番号管理。

全リモートブランチの build.txt を毎回スキャンし（キャッシュしない）、
- 衝突チェック（is_taken）
- 逐次探索（find_next_available）: 候補が埋まっていたら +1 して再確認
- 隙間探索（suggest_gaps）: 10 の倍数に切り上げ、次の番号まで min_gap 以上空くものだけ提案
を提供する。

逐次探索と隙間探索は結果が異なりうるが、呼び出し側（pre-commit / build-info）が
それぞれに依存しているので統合しない。
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from branch_tools.git_ops import parse_build_number

log = logging.getLogger(__name__)

MIN_BUILD_NUMBER = 5000
DEFAULT_MIN_GAP = 20

ProgressCallback = Callable[[int, int, str], None]


class BuildGateway(Protocol):
    def list_remote_branches(self, remote: str | None = None) -> list[str]: ...

    def read_file_at_branch_tip(
        self, branch: str, path: str | None = None, remote: str | None = None
    ) -> str | None: ...


@dataclass(frozen=True)
class NeighborPair:
    value: int
    left: int | None = None
    right: int | None = None

    @property
    def left_gap(self) -> int | None:
        return None if self.left is None else self.value - self.left

    @property
    def right_gap(self) -> int | None:
        return None if self.right is None else self.right - self.value


@dataclass(frozen=True)
class Suggestion:
    number: int
    after: int
    after_branch: str
    before: int | None  # None = 上限なし（END）
    before_branch: str = ""
    gap: int | None = None


class BuildState(str, Enum):
    EQUAL = "equal"
    AHEAD = "ahead"
    BEHIND = "behind"
    NO_REMOTE = "no_remote"


@dataclass(frozen=True)
class IncrementPlan:
    candidate: int
    taken_by: str | None
    proposed: int


def branches_for(value: int, numbers: Mapping[str, int]) -> list[str]:
    """value を持つブランチ（スキャン順）。衝突していれば複数。"""
    return [branch for branch, n in numbers.items() if n == value]


def compare_builds(local: int, remote: int | None) -> BuildState:
    if remote is None:
        return BuildState.NO_REMOTE
    if local < remote:
        return BuildState.BEHIND
    if local > remote:
        return BuildState.AHEAD
    return BuildState.EQUAL


class BuildNumberAllocator:
    def __init__(
        self,
        git: BuildGateway,
        *,
        min_build_number: int = MIN_BUILD_NUMBER,
    ) -> None:
        self.git = git
        self.min_build_number = min_build_number

    def collect_all(
        self,
        remote: str | None = None,
        progress: ProgressCallback | None = None,
    ) -> dict[str, int]:
        """全リモートブランチの build 番号を集める（ブランチ名 -> 番号）。"""
        branches = self.git.list_remote_branches(remote)
        total = len(branches)
        numbers: dict[str, int] = {}

        for index, branch in enumerate(branches, start=1):
            if progress is not None:
                progress(index, total, branch)
            number = parse_build_number(self.git.read_file_at_branch_tip(branch, remote=remote))
            if number is None or number < self.min_build_number:
                continue
            numbers[branch] = number

        log.info("build.txt found in %d of %d branches", len(numbers), total)
        return numbers

    @staticmethod
    def is_taken(candidate: int, numbers: Mapping[str, int]) -> str | None:
        for branch, n in numbers.items():
            if n == candidate:
                return branch
        return None

    @staticmethod
    def find_next_available(start: int, numbers: Mapping[str, int]) -> int:
        taken = set(numbers.values())
        candidate = start
        while candidate in taken:
            candidate += 1
        return candidate

    @staticmethod
    def compute_neighbors(numbers: Mapping[str, int]) -> dict[int, NeighborPair]:
        values = sorted(set(numbers.values()))
        neighbors: dict[int, NeighborPair] = {}
        for i, value in enumerate(values):
            neighbors[value] = NeighborPair(
                value=value,
                left=values[i - 1] if i > 0 else None,
                right=values[i + 1] if i < len(values) - 1 else None,
            )
        return neighbors

    @staticmethod
    def suggest_gaps(
        numbers: Mapping[str, int],
        min_gap: int = DEFAULT_MIN_GAP,
    ) -> list[Suggestion]:
        """各番号の直後を 10 の倍数に切り上げ、次の番号まで min_gap 以上あれば提案する。

        下側（current）との距離は見ない。低い番号ほど先に並ぶ。
        """
        if min_gap < 1:
            raise ValueError(f"min_gap must be >= 1 (got {min_gap})")

        values = sorted(set(numbers.values()))
        suggestions: list[Suggestion] = []

        for i, current in enumerate(values):
            following = values[i + 1] if i + 1 < len(values) else None
            suggested = math.ceil((current + 1) / 10) * 10

            if following is not None and suggested + min_gap > following:
                continue

            suggestions.append(
                Suggestion(
                    number=suggested,
                    after=current,
                    after_branch=branches_for(current, numbers)[0],
                    before=following,
                    before_branch=branches_for(following, numbers)[0] if following is not None else "",
                    gap=following - suggested if following is not None else None,
                )
            )
        return suggestions

    def plan_increment(self, local: int, numbers: Mapping[str, int]) -> IncrementPlan:
        """EQUAL 状態の自動インクリメント。埋まっていれば逐次探索にフォールバック。"""
        candidate = local + 1
        taken_by = self.is_taken(candidate, numbers)
        proposed = candidate
        if taken_by is not None:
            proposed = self.find_next_available(candidate + 1, numbers)
            log.info("build %d taken by %s, falling back to %d", candidate, taken_by, proposed)
        return IncrementPlan(candidate=candidate, taken_by=taken_by, proposed=proposed)

    def auto_select(
        self,
        numbers: Mapping[str, int],
        local: int,
        min_gap: int = DEFAULT_MIN_GAP,
        *,
        remote: str | None = None,
        progress: ProgressCallback | None = None,
    ) -> int:
        """無人モード用: 隙間提案のうち、今のリモートで空いている最初のもの。

        提案は numbers（先に取ったスナップショット）から作り、空きの確認は
        スキャンし直した結果で行う。全部埋まっていれば逐次探索。
        """
        suggestions = self.suggest_gaps(numbers, min_gap)
        if not suggestions:
            return self.find_next_available(local + 1, numbers)

        live = self.collect_all(remote, progress)
        for suggestion in suggestions:
            taken_by = self.is_taken(suggestion.number, live)
            if taken_by is None:
                return suggestion.number
            log.info("suggested build %d was claimed by %s meanwhile", suggestion.number, taken_by)
        return self.find_next_available(local + 1, live)
