"""GitHub Actions ワークフローへのブランチ登録。

対象は2ファイル:
- branch_var: シェルの case 文で「ブランチ -> 派生元」を返すワークフロー。
  `*)` の直前に `<branch>)` / `echo "<origin>";;` を追加する
- push_branches: `on: push: branches:` のクォート付きリストに `'<branch>'` を追加する

どちらも冪等（既に登録済みなら何もしない）。書き込む前に YAML として読めるか確認する。
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path

import yaml

from branch_tools.errors import WorkflowPatchFailed, WriteDenied

log = logging.getLogger(__name__)

DEFAULT_BRANCH_VAR_WORKFLOW = ".github/workflows/set-gizmo-branch-var.yml"
DEFAULT_PUSH_BRANCHES_WORKFLOW = ".github/workflows/ci-build-with-kiuwan-analysis.yml"

_DEFAULT_ARM = re.compile(r"(\s+)(\*\))")
_PUSH_BRANCHES = re.compile(
    r"(on:\s+push:\s+branches:.*?)((?:\n[ \t]+- ['\"][^'\"\n]+['\"])+)",
    re.S,
)


def has_case_arm(content: str, branch: str) -> bool:
    return re.search(rf"^\s*{re.escape(branch)}\)", content, re.M) is not None


def has_push_branch(content: str, branch: str) -> bool:
    pattern = rf"^\s+- ['\"]?{re.escape(branch)}['\"]?\s*$"
    return re.search(pattern, content, re.M) is not None


def add_case_arm(content: str, branch: str, origin: str) -> str | None:
    """`*)` の前に case アームを足したテキスト。追加不要/不可なら None。"""
    if has_case_arm(content, branch):
        return None
    m = _DEFAULT_ARM.search(content)
    if not m:
        return None

    ws = m.group(1)
    head, nl, indent = ws.rpartition("\n")
    if not nl:
        head, indent = "", ws
    entry = f"{head}\n{indent}{branch})\n{indent}  echo \"{origin}\";;\n{indent}"
    return content[: m.start()] + entry + m.group(2) + content[m.end():]


def add_push_branch(content: str, branch: str) -> str | None:
    """push トリガのブランチ一覧に追加したテキスト。追加不要/不可なら None。"""
    if has_push_branch(content, branch):
        return None
    m = _PUSH_BRANCHES.search(content)
    if not m:
        return None

    last_item = m.group(2).rsplit("\n", 1)[-1]
    indent = re.match(r"[ \t]*", last_item).group(0)  # type: ignore[union-attr]
    entry = f"\n{indent}- '{branch}'"
    return content[: m.end(2)] + entry + content[m.end(2):]


def _validate_yaml(path: Path, content: str) -> None:
    try:
        yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise WorkflowPatchFailed(f"patched {path} is not valid YAML: {e}") from e


@dataclass(frozen=True)
class WorkflowUpdate:
    branch_var_updated: bool = False
    push_branches_updated: bool = False

    @property
    def changed(self) -> bool:
        return self.branch_var_updated or self.push_branches_updated


class WorkflowPatcher:
    def __init__(
        self,
        root: Path,
        *,
        branch_var: str = DEFAULT_BRANCH_VAR_WORKFLOW,
        push_branches: str = DEFAULT_PUSH_BRANCHES_WORKFLOW,
    ) -> None:
        self.root = root
        self.branch_var_path = root / branch_var
        self.push_branches_path = root / push_branches

    def _patch(self, path: Path, patched: str | None) -> bool:
        if patched is None:
            return False
        _validate_yaml(path, patched)
        try:
            path.write_text(patched, encoding="utf-8")
        except OSError as e:
            raise WriteDenied(f"cannot write {path}: {e}") from e
        log.info("workflow updated: %s", path)
        return True

    def update_branch_var(self, branch: str, origin: str) -> bool:
        if not self.branch_var_path.exists():
            return False
        content = self.branch_var_path.read_text(encoding="utf-8")
        return self._patch(self.branch_var_path, add_case_arm(content, branch, origin))

    def update_push_branches(self, branch: str) -> bool:
        if not self.push_branches_path.exists():
            return False
        content = self.push_branches_path.read_text(encoding="utf-8")
        return self._patch(self.push_branches_path, add_push_branch(content, branch))

    def update(self, branch: str, origin: str) -> WorkflowUpdate:
        return WorkflowUpdate(
            branch_var_updated=self.update_branch_var(branch, origin),
            push_branches_updated=self.update_push_branches(branch),
        )

    def branch_registered(self, branch: str) -> bool:
        """両方のファイルに branch が載っているか。"""
        in_branch_var = False
        in_push_branches = False
        if self.branch_var_path.exists():
            in_branch_var = has_case_arm(self.branch_var_path.read_text(encoding="utf-8"), branch)
        if self.push_branches_path.exists():
            in_push_branches = has_push_branch(
                self.push_branches_path.read_text(encoding="utf-8"), branch
            )
        return in_branch_var and in_push_branches
