"""遅延コマンドのバックグラウンド起動（fire-and-forget）。

pre-push hook の中からは push できないので、hook が終わった後に走るよう
少し待ってから実行する子プロセスを切り離して起動する。結果は待たない。
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
from typing import Any

log = logging.getLogger(__name__)


def build_delayed_command(
    command: list[str],
    *,
    delay: int = 1,
    success_message: str = "",
    windows: bool | None = None,
) -> list[str]:
    if windows is None:
        windows = os.name == "nt"

    if windows:
        inner = f"timeout /T {delay} /NOBREAK > NUL && {subprocess.list2cmdline(command)}"
        if success_message:
            inner += f" && echo. && echo {success_message}"
        return ["cmd", "/c", inner]

    inner = f"sleep {delay} && {shlex.join(command)}"
    if success_message:
        inner += f" && echo '' && echo {shlex.quote(success_message)}"
    return ["sh", "-c", inner]


def schedule_async_command(
    command: list[str],
    *,
    delay: int = 1,
    success_message: str = "",
) -> subprocess.Popen[bytes]:
    argv = build_delayed_command(command, delay=delay, success_message=success_message)

    kwargs: dict[str, Any] = {}
    if os.name == "nt":
        kwargs["creationflags"] = (
            subprocess.DETACHED_PROCESS | subprocess.CREATE_NEW_PROCESS_GROUP  # type: ignore[attr-defined]
        )
    else:
        kwargs["start_new_session"] = True

    log.info("scheduled in %ss: %s", delay, " ".join(command))
    return subprocess.Popen(argv, stdin=subprocess.DEVNULL, close_fds=True, **kwargs)
