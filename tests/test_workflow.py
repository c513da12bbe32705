"""ワークフローファイルへのブランチ登録のテスト。"""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from branch_tools.errors import WorkflowPatchFailed
from branch_tools.workflow import (
    WorkflowPatcher,
    add_case_arm,
    add_push_branch,
    has_case_arm,
    has_push_branch,
)
from conftest import BRANCH_VAR_PATH, BRANCH_VAR_YML, PUSH_BRANCHES_PATH, PUSH_BRANCHES_YML


def test_add_case_arm_before_default() -> None:
    patched = add_case_arm(BRANCH_VAR_YML, "feature/x", "develop")
    assert patched is not None
    assert (
        '            feature/x)\n'
        '              echo "develop";;\n'
        '            *)\n'
    ) in patched
    assert patched.index("feature/x)") < patched.index("*)")
    yaml.safe_load(patched)


def test_add_case_arm_is_idempotent() -> None:
    once = add_case_arm(BRANCH_VAR_YML, "feature/x", "develop")
    assert once is not None
    assert add_case_arm(once, "feature/x", "develop") is None
    assert add_case_arm(BRANCH_VAR_YML, "develop", "main") is None


def test_add_case_arm_without_default_arm() -> None:
    assert add_case_arm("case x in\n  a)\n    echo a;;\nesac\n", "b", "a") is None


def test_add_push_branch_appends_with_same_indent() -> None:
    patched = add_push_branch(PUSH_BRANCHES_YML, "feature/x")
    assert patched is not None
    assert "      - 'main'\n      - 'feature/x'\njobs:" in patched
    data = yaml.safe_load(patched)
    # PyYAML は `on` を True として読む
    assert data[True]["push"]["branches"] == ["develop", "main", "feature/x"]


def test_add_push_branch_is_idempotent() -> None:
    assert add_push_branch(PUSH_BRANCHES_YML, "develop") is None
    assert has_push_branch(PUSH_BRANCHES_YML, "main")
    assert not has_push_branch(PUSH_BRANCHES_YML, "feature/x")


def test_has_case_arm_escapes_branch_name() -> None:
    assert has_case_arm(BRANCH_VAR_YML, "develop")
    assert not has_case_arm(BRANCH_VAR_YML, "dev.lop")


def _write_workflows(root: Path) -> None:
    (root / ".github" / "workflows").mkdir(parents=True)
    (root / BRANCH_VAR_PATH).write_text(BRANCH_VAR_YML, encoding="utf-8")
    (root / PUSH_BRANCHES_PATH).write_text(PUSH_BRANCHES_YML, encoding="utf-8")


def test_patcher_updates_both_files_once(tmp_path: Path) -> None:
    _write_workflows(tmp_path)
    patcher = WorkflowPatcher(tmp_path)

    first = patcher.update("feature/x", "develop")
    assert first.branch_var_updated and first.push_branches_updated
    assert patcher.branch_registered("feature/x")

    second = patcher.update("feature/x", "develop")
    assert second.changed is False


def test_patcher_missing_files_is_no_op(tmp_path: Path) -> None:
    result = WorkflowPatcher(tmp_path).update("feature/x", "develop")
    assert result.changed is False


def test_patcher_refuses_to_write_invalid_yaml(tmp_path: Path) -> None:
    _write_workflows(tmp_path)
    patcher = WorkflowPatcher(tmp_path)
    with pytest.raises(WorkflowPatchFailed):
        patcher.update_push_branches("it's")
    assert (tmp_path / PUSH_BRANCHES_PATH).read_text(encoding="utf-8") == PUSH_BRANCHES_YML
