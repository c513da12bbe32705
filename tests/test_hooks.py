"""git hook インストールのテスト。"""

from __future__ import annotations

import os
import subprocess
from pathlib import Path

import pytest

from branch_tools.hooks import HOOK_MARKER, install_hooks, render_pre_commit


def test_render_pre_commit_quotes_files() -> None:
    script = render_pre_commit(["build.txt", "dir with space/x.yml"])
    assert script.startswith("#!/bin/sh\n")
    assert HOOK_MARKER in script
    assert "prepare-commit --auto" in script
    assert "'dir with space/x.yml'" in script


def test_install_fresh(tmp_path: Path) -> None:
    hooks = tmp_path / "hooks"
    results = install_hooks(hooks, staged_files=["build.txt"])
    assert [(r.name, r.action) for r in results] == [
        ("pre-commit", "installed"),
        ("pre-push", "installed"),
    ]
    pre_push = hooks / "pre-push"
    assert "trigger-build" in pre_push.read_text(encoding="utf-8")
    assert os.access(pre_push, os.X_OK)


def test_reinstall_updates_own_hooks(tmp_path: Path) -> None:
    install_hooks(tmp_path, staged_files=["build.txt"])
    results = install_hooks(tmp_path, staged_files=["build.txt", "other.yml"])
    assert {r.action for r in results} == {"updated"}
    assert "other.yml" in (tmp_path / "pre-commit").read_text(encoding="utf-8")


def test_foreign_hook_is_kept_without_force(tmp_path: Path) -> None:
    foreign = tmp_path / "pre-commit"
    foreign.write_text("#!/bin/sh\necho mine\n", encoding="utf-8")

    results = install_hooks(tmp_path, staged_files=["build.txt"])
    assert results[0].action == "skipped"
    assert foreign.read_text(encoding="utf-8") == "#!/bin/sh\necho mine\n"


def test_foreign_hook_is_backed_up_with_force(tmp_path: Path) -> None:
    foreign = tmp_path / "pre-commit"
    foreign.write_text("#!/bin/sh\necho mine\n", encoding="utf-8")

    results = install_hooks(tmp_path, staged_files=["build.txt"], force=True)
    assert results[0].action == "replaced"
    assert (tmp_path / "pre-commit.bak").read_text(encoding="utf-8") == "#!/bin/sh\necho mine\n"
    assert HOOK_MARKER in foreign.read_text(encoding="utf-8")


def _stub_executable(tmp_path: Path) -> tuple[Path, Path]:
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    calls = tmp_path / "calls.log"
    stub = bin_dir / "branch-tools"
    stub.write_text(f'#!/bin/sh\necho "$@" >> "{calls}"\n', encoding="utf-8")
    stub.chmod(0o755)
    return bin_dir, calls


@pytest.mark.skipif(os.name == "nt", reason="POSIX shell hooks")
def test_hooks_fall_back_without_terminal(tmp_path: Path) -> None:
    bin_dir, calls = _stub_executable(tmp_path)
    hooks = tmp_path / "hooks"
    install_hooks(hooks, staged_files=["build.txt"])
    env = {**os.environ, "PATH": f"{bin_dir}{os.pathsep}{os.environ.get('PATH', '')}"}

    for name in ("pre-commit", "pre-push"):
        # 新しいセッション = 制御端末なし（/dev/tty は存在しても開けない）
        proc = subprocess.run(
            ["sh", str(hooks / name)],
            cwd=tmp_path,
            env=env,
            stdin=subprocess.DEVNULL,
            capture_output=True,
            text=True,
            start_new_session=True,
            check=False,
        )
        assert proc.returncode == 0, proc.stderr

    assert calls.read_text(encoding="utf-8").splitlines() == [
        "prepare-commit --auto",
        "trigger-build --skip",
    ]
