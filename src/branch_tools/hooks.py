"""git hook のインストール。

- pre-commit: prepare-commit を走らせ、書き換えたファイルを stage し直す
- pre-push: trigger-build（CI 用の空コミットを作るか確認）

端末が開けない環境（GUI クライアント、CI）では --auto / --skip で動く。
`[ -r /dev/tty ]` はデバイスがあるだけで真になるので、実際に開けるかで判定する。

既に別の hook がある場合は触らない。`force=True` なら `.bak` に退避して上書きする。
"""

from __future__ import annotations

import logging
import shlex
import stat
from dataclasses import dataclass
from pathlib import Path

log = logging.getLogger(__name__)

HOOK_MARKER = "# installed by branch-tools"


@dataclass(frozen=True)
class HookResult:
    name: str
    path: Path
    action: str  # installed | updated | replaced | skipped


def render_pre_commit(files: list[str], executable: str = "branch-tools") -> str:
    quoted = " ".join(shlex.quote(f) for f in files)
    return f"""#!/bin/sh
{HOOK_MARKER}
if (exec </dev/tty) 2>/dev/null; then
    {executable} prepare-commit < /dev/tty || exit $?
else
    {executable} prepare-commit --auto || exit $?
fi

for f in {quoted}; do
    if [ -e "$f" ]; then
        git add -- "$f"
    fi
done
exit 0
"""


def render_pre_push(executable: str = "branch-tools") -> str:
    return f"""#!/bin/sh
{HOOK_MARKER}
if (exec </dev/tty) 2>/dev/null; then
    exec {executable} trigger-build < /dev/tty
fi
exec {executable} trigger-build --skip
"""


def _write_hook(path: Path, content: str, *, force: bool) -> str:
    if path.exists():
        current = path.read_text(encoding="utf-8", errors="replace")
        if HOOK_MARKER in current:
            action = "updated"
        elif not force:
            log.warning("existing hook left untouched: %s", path)
            return "skipped"
        else:
            backup = path.with_name(path.name + ".bak")
            path.replace(backup)
            log.info("existing hook moved to %s", backup)
            action = "replaced"
    else:
        action = "installed"

    path.write_text(content, encoding="utf-8")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return action


def install_hooks(
    hooks_dir: Path,
    *,
    staged_files: list[str],
    force: bool = False,
    executable: str = "branch-tools",
) -> list[HookResult]:
    hooks_dir.mkdir(parents=True, exist_ok=True)
    hooks = {
        "pre-commit": render_pre_commit(staged_files, executable),
        "pre-push": render_pre_push(executable),
    }
    results: list[HookResult] = []
    for name, content in hooks.items():
        path = hooks_dir / name
        action = _write_hook(path, content, force=force)
        results.append(HookResult(name=name, path=path, action=action))
    return results
