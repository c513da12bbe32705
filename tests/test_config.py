"""branch-tools.toml 読み込みのテスト。"""

from pathlib import Path

from branch_tools import build_number, git_ops, origin, workflow
from branch_tools.config import DEFAULT_RELEASE_URL, ToolConfig, load_config


def test_load_default_config_missing_file(tmp_path: Path) -> None:
    cfg = load_config(tmp_path / "missing.toml")
    assert cfg.git.remote == "origin"
    assert cfg.git.timeout == 30.0
    assert cfg.build.file == "build.txt"
    assert cfg.build.min_build_number == 5000
    assert cfg.build.min_gap == 20
    assert cfg.branches.base == ["develop", "main", "master"]
    assert cfg.update.release_url == DEFAULT_RELEASE_URL
    assert cfg.update.auto_check is False


def test_load_config_from_file(tmp_path: Path) -> None:
    p = tmp_path / "branch-tools.toml"
    p.write_text(
        """
[git]
remote = "upstream"
timeout = 5

[build]
min_gap = 50

[branches]
base = ["main", "release"]
protected = ["main"]

[workflows]
branch_var = "ci/branch.yml"

[update]
auto_check = true
""",
        encoding="utf-8",
    )

    cfg = load_config(p)
    assert cfg.git.remote == "upstream"
    assert cfg.git.timeout == 5.0
    assert cfg.build.min_gap == 50
    assert cfg.build.min_build_number == 5000
    assert cfg.branches.base == ["main", "release"]
    assert cfg.branches.protected == ["main"]
    assert cfg.workflows.branch_var == "ci/branch.yml"
    assert cfg.workflows.push_branches == ".github/workflows/ci-build-with-kiuwan-analysis.yml"
    assert cfg.update.auto_check is True


def test_managed_files(tmp_path: Path) -> None:
    cfg = load_config(tmp_path / "missing.toml")
    assert cfg.managed_files() == [
        ".github/workflows/set-gizmo-branch-var.yml",
        ".github/workflows/ci-build-with-kiuwan-analysis.yml",
        "build.txt",
    ]


def test_defaults_follow_module_constants(tmp_path: Path) -> None:
    # 既定値は各モジュールの定数と一致する（ファイルあり・なしの両方）
    empty = tmp_path / "branch-tools.toml"
    empty.write_text("", encoding="utf-8")
    for cfg in (ToolConfig(), load_config(empty)):
        assert cfg.git.remote == git_ops.DEFAULT_REMOTE
        assert cfg.git.timeout == git_ops.DEFAULT_TIMEOUT
        assert cfg.build.file == git_ops.DEFAULT_BUILD_FILE
        assert cfg.build.min_build_number == build_number.MIN_BUILD_NUMBER
        assert cfg.build.min_gap == build_number.DEFAULT_MIN_GAP
        assert cfg.branches.base == list(origin.DEFAULT_BASE_BRANCHES)
        assert cfg.branches.protected == list(origin.DEFAULT_BASE_BRANCHES)
        assert cfg.workflows.branch_var == workflow.DEFAULT_BRANCH_VAR_WORKFLOW
        assert cfg.workflows.push_branches == workflow.DEFAULT_PUSH_BRANCHES_WORKFLOW


def test_default_base_list_is_not_shared() -> None:
    first = ToolConfig()
    first.branches.base.append("release")
    assert ToolConfig().branches.base == list(origin.DEFAULT_BASE_BRANCHES)
