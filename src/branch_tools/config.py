"""branch-tools の設定。

設定ファイル: リポジトリルートの `branch-tools.toml`（無ければデフォルト）

```toml
[git]
remote = "origin"
timeout = 30

[build]
file = "build.txt"
min_build_number = 5000
min_gap = 20

[branches]
base = ["develop", "main", "master"]       # origin 推定の基準ブランチ（順序 = 優先度）
protected = ["develop", "main", "master"]  # ワークフロー更新をしないブランチ

[workflows]
branch_var = ".github/workflows/set-gizmo-branch-var.yml"
push_branches = ".github/workflows/ci-build-with-kiuwan-analysis.yml"

[update]
release_url = "https://api.github.com/repos/nop1984/branch-tools/releases/latest"
auto_check = false
```
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

try:
    import tomllib
except ModuleNotFoundError:  # Python < 3.11
    import tomli as tomllib  # type: ignore[no-redef]

from branch_tools.build_number import DEFAULT_MIN_GAP, MIN_BUILD_NUMBER
from branch_tools.git_ops import DEFAULT_BUILD_FILE, DEFAULT_REMOTE, DEFAULT_TIMEOUT
from branch_tools.origin import DEFAULT_BASE_BRANCHES
from branch_tools.workflow import DEFAULT_BRANCH_VAR_WORKFLOW, DEFAULT_PUSH_BRANCHES_WORKFLOW

CONFIG_FILE_NAME = "branch-tools.toml"

DEFAULT_RELEASE_URL = "https://api.github.com/repos/nop1984/branch-tools/releases/latest"


@dataclass
class GitConfig:
    remote: str = DEFAULT_REMOTE
    timeout: float = DEFAULT_TIMEOUT


@dataclass
class BuildConfig:
    file: str = DEFAULT_BUILD_FILE
    min_build_number: int = MIN_BUILD_NUMBER
    min_gap: int = DEFAULT_MIN_GAP


@dataclass
class BranchesConfig:
    base: list[str] = field(default_factory=lambda: list(DEFAULT_BASE_BRANCHES))
    protected: list[str] = field(default_factory=lambda: list(DEFAULT_BASE_BRANCHES))


@dataclass
class WorkflowsConfig:
    branch_var: str = DEFAULT_BRANCH_VAR_WORKFLOW
    push_branches: str = DEFAULT_PUSH_BRANCHES_WORKFLOW

    def paths(self) -> list[str]:
        return [self.branch_var, self.push_branches]


@dataclass
class UpdateConfig:
    release_url: str = DEFAULT_RELEASE_URL
    auto_check: bool = False


@dataclass
class ToolConfig:
    git: GitConfig = field(default_factory=GitConfig)
    build: BuildConfig = field(default_factory=BuildConfig)
    branches: BranchesConfig = field(default_factory=BranchesConfig)
    workflows: WorkflowsConfig = field(default_factory=WorkflowsConfig)
    update: UpdateConfig = field(default_factory=UpdateConfig)

    def managed_files(self) -> list[str]:
        """ブランチ固有に書き換えるファイル（cleanup / hook の git add 対象）。"""
        return [*self.workflows.paths(), self.build.file]


def load_config(path: Path | None = None) -> ToolConfig:
    if path is None:
        path = Path(CONFIG_FILE_NAME)
    if not path.exists():
        return ToolConfig()

    raw = tomllib.loads(path.read_text(encoding="utf-8"))

    git = raw.get("git", {})
    build = raw.get("build", {})
    branches = raw.get("branches", {})
    workflows = raw.get("workflows", {})
    update = raw.get("update", {})

    return ToolConfig(
        git=GitConfig(
            remote=str(git.get("remote", DEFAULT_REMOTE)),
            timeout=float(git.get("timeout", DEFAULT_TIMEOUT)),
        ),
        build=BuildConfig(
            file=str(build.get("file", DEFAULT_BUILD_FILE)),
            min_build_number=int(build.get("min_build_number", MIN_BUILD_NUMBER)),
            min_gap=int(build.get("min_gap", DEFAULT_MIN_GAP)),
        ),
        branches=BranchesConfig(
            base=list(branches.get("base", DEFAULT_BASE_BRANCHES) or []),
            protected=list(branches.get("protected", DEFAULT_BASE_BRANCHES) or []),
        ),
        workflows=WorkflowsConfig(
            branch_var=str(workflows.get("branch_var", DEFAULT_BRANCH_VAR_WORKFLOW)),
            push_branches=str(workflows.get("push_branches", DEFAULT_PUSH_BRANCHES_WORKFLOW)),
        ),
        update=UpdateConfig(
            release_url=str(update.get("release_url", DEFAULT_RELEASE_URL)),
            auto_check=bool(update.get("auto_check", False)),
        ),
    )
