from __future__ import annotations

import subprocess
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

import pytest

BRANCH_VAR_YML = """\
name: Set branch variable
on:
  workflow_call:
    outputs:
      base_branch:
        value: ${{ jobs.detect.outputs.base_branch }}
jobs:
  detect:
    runs-on: ubuntu-latest
    outputs:
      base_branch: ${{ steps.pick.outputs.base_branch }}
    steps:
      - id: pick
        run: |
          BASE=$(case "${GITHUB_REF_NAME}" in
            develop)
              echo "develop";;
            *)
              echo "main";;
          esac)
          echo "base_branch=$BASE" >> "$GITHUB_OUTPUT"
"""

PUSH_BRANCHES_YML = """\
name: CI build
on:
  push:
    branches:
      - 'develop'
      - 'main'
jobs:
  build:
    runs-on: ubuntu-latest
    steps:
      - uses: actions/checkout@v4
"""

BRANCH_VAR_PATH = ".github/workflows/set-gizmo-branch-var.yml"
PUSH_BRANCHES_PATH = ".github/workflows/ci-build-with-kiuwan-analysis.yml"

GitRunner = Callable[..., str]


def _run_git(cwd: Path, *args: str) -> str:
    proc = subprocess.run(
        ["git", *args],
        cwd=cwd,
        text=True,
        capture_output=True,
        check=False,
    )
    if proc.returncode != 0:
        raise AssertionError(f"git {' '.join(args)} failed: {proc.stderr}")
    return proc.stdout.strip()


@pytest.fixture(autouse=True)
def isolated_home(tmp_path_factory: pytest.TempPathFactory, monkeypatch: pytest.MonkeyPatch) -> Path:
    """HOME と git のグローバル設定をテスト用に切り離す。"""
    home = tmp_path_factory.mktemp("home")
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("USERPROFILE", str(home))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", str(home / ".gitconfig"))
    monkeypatch.setenv("GIT_AUTHOR_NAME", "branch-tools test")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "test@example.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "branch-tools test")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "test@example.com")
    for var in ("GIT_DIR", "GIT_WORK_TREE", "GIT_INDEX_FILE"):
        monkeypatch.delenv(var, raising=False)
    return home


@pytest.fixture()
def git() -> GitRunner:
    """`git(cwd, *args)` でテスト用に git を叩く。失敗したら AssertionError。"""
    return _run_git


@dataclass
class RepoSet:
    work: Path
    bare: Path

    def commit_build(self, number: int, message: str | None = None) -> None:
        (self.work / "build.txt").write_text(f"{number}\n", encoding="utf-8")
        _run_git(self.work, "add", "build.txt")
        _run_git(self.work, "commit", "-m", message or f"build {number}")

    def branch_from(self, name: str, start: str) -> None:
        """`git branch name start` で作る（reflog に Created from <start> が残る）。"""
        _run_git(self.work, "branch", name, start)
        _run_git(self.work, "checkout", name)


@pytest.fixture()
def repos(tmp_path: Path) -> RepoSet:
    """bare の origin と、それを push 先にした作業リポジトリ。

    リモートの build.txt:
    - main: 5000
    - develop: 5010
    - feature/a: 5038
    - feature/b: 5064

    作業ツリーは develop に居る状態で返す。
    """
    bare = tmp_path / "origin.git"
    work = tmp_path / "work"
    bare.mkdir()
    work.mkdir()
    _run_git(bare, "init", "--bare", "-b", "main")
    _run_git(work, "init", "-b", "main")

    workflows = work / ".github" / "workflows"
    workflows.mkdir(parents=True)
    (work / BRANCH_VAR_PATH).write_text(BRANCH_VAR_YML, encoding="utf-8")
    (work / PUSH_BRANCHES_PATH).write_text(PUSH_BRANCHES_YML, encoding="utf-8")

    rs = RepoSet(work=work, bare=bare)
    _run_git(work, "add", ".github")
    rs.commit_build(5000, "initial")
    _run_git(work, "remote", "add", "origin", str(bare))
    _run_git(work, "push", "-u", "origin", "main")

    rs.branch_from("develop", "main")
    rs.commit_build(5010)
    _run_git(work, "push", "-u", "origin", "develop")

    for name, number in (("feature/a", 5038), ("feature/b", 5064)):
        rs.branch_from(name, "develop")
        rs.commit_build(number)
        _run_git(work, "push", "-u", "origin", name)

    _run_git(work, "checkout", "develop")
    return rs
