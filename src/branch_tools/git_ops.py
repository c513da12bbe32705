"""git 操作ゲートウェイ。

方針:
- git はすべて subprocess で呼ぶ。cwd はリポジトリルートを毎回明示し、chdir はしない
- 1コマンドごとに timeout を付ける（ネットワークが止まっても hook が固まらないように）
- 「ファイルが無い」「ref が無い」は None / False で返し、通信や想定外の失敗は例外

build.txt の形式:
- 読み: 1行目を整数として読む（末尾の空白/改行は無視）
- 書き: 整数 + 改行1つ
"""

from __future__ import annotations

import logging
import re
import subprocess
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path

from branch_tools.errors import (
    DetachedOrUnknownHead,
    GitQueryFailed,
    RemoteUnreachable,
    RepositoryNotFound,
    WriteDenied,
)

log = logging.getLogger(__name__)

DEFAULT_REMOTE = "origin"
DEFAULT_BUILD_FILE = "build.txt"
DEFAULT_TIMEOUT = 30.0

# ツール自身を clone した場所（.git/branch-tools など）はリポジトリ探索で飛ばす
TOOL_DIR_NAME = "branch-tools"

EMPTY_TREE_SHA = "4b825dc642cb6eb9a060e54bf8d69288fbee4904"

# git show の stderr のうち「ファイル/ref が無いだけ」を意味するもの
_MISSING_MARKERS = (
    "does not exist in",
    "exists on disk, but not in",
    "invalid object name",
    "unknown revision",
    "bad revision",
    "not a valid object name",
)

_LEADING_INT = re.compile(r"^\s*(-?\d+)")


def parse_build_number(text: str | None) -> int | None:
    """build.txt の内容から整数を取り出す。1行目だけを見る。読めなければ None。"""
    if not text:
        return None
    lines = text.splitlines()
    if not lines:
        return None
    m = _LEADING_INT.match(lines[0])
    if not m:
        return None
    return int(m.group(1))


def format_build_number(number: int) -> str:
    return f"{number}\n"


@dataclass(frozen=True)
class ReflogEntry:
    """reflog の1行。`line` は `<sha> <branch>@{n}: <message>` の生テキスト。"""

    sha: str
    message: str
    line: str


def parse_reflog_line(line: str) -> ReflogEntry | None:
    sha, _, rest = line.strip().partition(" ")
    if not sha:
        return None
    _, sep, message = rest.partition(": ")
    if not sep:
        message = rest
    return ReflogEntry(sha=sha, message=message.strip(), line=line.strip())


@dataclass
class GitRepo:
    path: Path
    remote: str = DEFAULT_REMOTE
    build_file: str = DEFAULT_BUILD_FILE
    timeout: float = DEFAULT_TIMEOUT

    def _exec(self, args: list[str]) -> subprocess.CompletedProcess[str]:
        log.debug("git %s (cwd=%s)", " ".join(args), self.path)
        try:
            return subprocess.run(
                ["git", *args],
                cwd=self.path,
                text=True,
                capture_output=True,
                check=False,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise GitQueryFailed(
                f"git {' '.join(args)} timed out after {self.timeout:g}s"
            ) from e
        except FileNotFoundError as e:
            # git が無い / path が無い
            raise GitQueryFailed(f"cannot run git in {self.path}: {e}") from e

    def run(self, args: list[str]) -> str:
        proc = self._exec(args)
        if proc.returncode != 0:
            raise GitQueryFailed(proc.stderr.strip() or f"git {args[0]} failed")
        return proc.stdout.strip()

    def succeeds(self, args: list[str]) -> bool:
        return self._exec(args).returncode == 0

    def command(self, args: list[str]) -> list[str]:
        """cwd に依存しない形のコマンド列（バックグラウンド実行用）。"""
        return ["git", "-C", str(self.path), *args]

    # --- remote branches / build.txt ---

    def list_remote_branches(self, remote: str | None = None) -> list[str]:
        remote = remote or self.remote
        try:
            proc = self._exec(["ls-remote", "--heads", remote])
        except GitQueryFailed as e:
            raise RemoteUnreachable(f"{remote}: {e}") from e
        if proc.returncode != 0:
            raise RemoteUnreachable(
                proc.stderr.strip() or f"git ls-remote {remote} failed"
            )

        branches: list[str] = []
        for line in proc.stdout.splitlines():
            _, _, ref = line.partition("\t")
            ref = ref.strip()
            if ref.startswith("refs/heads/"):
                branches.append(ref[len("refs/heads/"):])
        return branches

    def read_file_at_branch_tip(
        self,
        branch: str,
        path: str | None = None,
        remote: str | None = None,
    ) -> str | None:
        """`<remote>/<branch>` 先端のファイルの1行目。無ければ None。"""
        remote = remote or self.remote
        path = path or self.build_file
        proc = self._exec(["show", f"{remote}/{branch}:{path}"])
        if proc.returncode != 0:
            err = proc.stderr.strip()
            if any(marker in err for marker in _MISSING_MARKERS):
                return None
            raise GitQueryFailed(err or f"git show {remote}/{branch}:{path} failed")

        lines = proc.stdout.splitlines()
        if not lines:
            return None
        return lines[0].strip()

    def remote_build_number(self, branch: str, remote: str | None = None) -> int | None:
        return parse_build_number(self.read_file_at_branch_tip(branch, remote=remote))

    def read_local_file(self, path: str | Path) -> str | None:
        p = self.path / path
        if not p.is_file():
            return None
        return p.read_text(encoding="utf-8")

    def write_local_file(self, path: str | Path, content: str) -> Path:
        p = self.path / path
        try:
            p.write_text(content, encoding="utf-8")
        except OSError as e:
            raise WriteDenied(f"cannot write {p}: {e}") from e
        return p

    def read_build_number(self) -> int | None:
        return parse_build_number(self.read_local_file(self.build_file))

    def write_build_number(self, number: int) -> Path:
        p = self.write_local_file(self.build_file, format_build_number(number))
        log.info("build number written: %s -> %s", number, p)
        return p

    # --- refs / history ---

    def current_branch(self) -> str:
        proc = self._exec(["symbolic-ref", "--quiet", "--short", "HEAD"])
        name = proc.stdout.strip()
        if proc.returncode != 0 or not name or name == "HEAD":
            raise DetachedOrUnknownHead(f"HEAD is not on a named branch in {self.path}")
        return name

    def reflog_entries(self, branch: str) -> Iterator[ReflogEntry]:
        """branch の reflog を新しい順に返す（最古が最後）。reflog が無ければ空。"""
        proc = self._exec(
            ["reflog", "show", "--no-abbrev-commit", "--format=%H %gd: %gs", branch, "--"]
        )
        if proc.returncode != 0:
            log.debug("no reflog for %s: %s", branch, proc.stderr.strip())
            return
        for line in proc.stdout.splitlines():
            entry = parse_reflog_line(line)
            if entry is not None:
                yield entry

    def branches_containing(self, sha: str) -> list[str]:
        proc = self._exec(["branch", "--contains", sha, "--format=%(refname:short)"])
        if proc.returncode != 0:
            return []
        return [b.strip() for b in proc.stdout.splitlines() if b.strip()]

    def ref_exists(self, name: str) -> bool:
        return self.succeeds(["rev-parse", "--verify", "--quiet", name])

    def merge_base_distance(self, base: str, branch: str) -> int | None:
        """merge-base(base, branch) から base までのコミット数。ref が無ければ None。"""
        if not (self.ref_exists(base) and self.ref_exists(branch)):
            return None
        proc = self._exec(["merge-base", base, branch])
        if proc.returncode != 0:
            # 共通祖先なし
            return None
        merge_base = proc.stdout.strip()
        return int(self.run(["rev-list", "--count", f"{merge_base}..{base}"]))

    # --- working copy ---

    def has_staged_changes(self) -> bool:
        proc = self._exec(["diff", "--cached", "--quiet"])
        if proc.returncode > 1:
            raise GitQueryFailed(proc.stderr.strip() or "git diff --cached failed")
        return proc.returncode == 1

    def differs_from(self, ref: str, path: str) -> bool:
        proc = self._exec(["diff", "--quiet", ref, "--", path])
        if proc.returncode > 1:
            raise GitQueryFailed(proc.stderr.strip() or f"git diff {ref} failed")
        return proc.returncode == 1

    def checkout_path(self, ref: str, path: str) -> None:
        self.run(["checkout", ref, "--", path])

    def add(self, paths: list[str]) -> None:
        if paths:
            self.run(["add", "--", *paths])

    def commit(self, message: str, *, no_verify: bool = False, allow_empty: bool = False) -> None:
        args = ["commit", "-m", message]
        if no_verify:
            args.append("--no-verify")
        if allow_empty:
            args.append("--allow-empty")
        self.run(args)

    def last_commit_message(self) -> str:
        proc = self._exec(["log", "-1", "--pretty=%B"])
        if proc.returncode != 0:
            return ""
        return proc.stdout.strip()

    def last_commit_is_empty(self) -> bool:
        """HEAD がファイル変更を含まないコミットか。"""
        tree = self._exec(["rev-parse", "HEAD^{tree}"])
        if tree.returncode != 0:
            return False
        parent = self._exec(["rev-parse", "HEAD~1^{tree}"])
        if parent.returncode != 0:
            return tree.stdout.strip() == EMPTY_TREE_SHA
        return tree.stdout.strip() == parent.stdout.strip()

    def has_upstream(self) -> bool:
        return self.succeeds(["rev-parse", "--abbrev-ref", "--symbolic-full-name", "@{upstream}"])

    def hooks_dir(self) -> Path:
        return self.path / self.run(["rev-parse", "--git-path", "hooks"])

    # --- remote writes ---

    def fetch(self, remote: str | None = None) -> None:
        remote = remote or self.remote
        proc = self._exec(["fetch", "--prune", remote])
        if proc.returncode != 0:
            raise RemoteUnreachable(proc.stderr.strip() or f"git fetch {remote} failed")

    def pull(self, branch: str, remote: str | None = None) -> None:
        remote = remote or self.remote
        self.run(["pull", remote, branch])

    def push_args(self, *, no_verify: bool = False, set_upstream: str | None = None) -> list[str]:
        args = ["push"]
        if no_verify:
            args.append("--no-verify")
        if set_upstream:
            args += ["--set-upstream", self.remote, set_upstream]
        return args

    def push(self, *, no_verify: bool = False, set_upstream: str | None = None) -> None:
        proc = self._exec(self.push_args(no_verify=no_verify, set_upstream=set_upstream))
        if proc.returncode != 0:
            raise RemoteUnreachable(proc.stderr.strip() or "git push failed")


def _is_tool_checkout(toplevel: Path) -> bool:
    return toplevel.name == TOOL_DIR_NAME or f".git/{TOOL_DIR_NAME}" in toplevel.as_posix()


def _show_toplevel(cwd: Path) -> Path | None:
    try:
        proc = subprocess.run(
            ["git", "rev-parse", "--show-toplevel"],
            cwd=cwd,
            text=True,
            capture_output=True,
            check=False,
            timeout=DEFAULT_TIMEOUT,
        )
    except (OSError, subprocess.TimeoutExpired):
        return None
    if proc.returncode != 0 or not proc.stdout.strip():
        return None
    return Path(proc.stdout.strip())


def detect_repository(start: Path | None = None, *, max_levels: int = 10) -> Path:
    """start から上に向かって git リポジトリを探す。

    branch-tools 自身のチェックアウト（`.git/branch-tools` 配下など）に当たった場合は
    その外側から探索を続ける。
    """
    search = (start or Path.cwd()).resolve()
    skipped_tool = False

    for _ in range(max_levels):
        if search.is_dir():
            top = _show_toplevel(search)
            if top is not None:
                if _is_tool_checkout(top):
                    skipped_tool = True
                    search = top.parent
                    continue
                if skipped_tool:
                    log.info("skipped branch-tools checkout, using parent repository %s", top)
                return top

        parent = search.parent
        if parent == search:
            break
        search = parent

    raise RepositoryNotFound(
        f"could not detect a git repository above {start or Path.cwd()}; "
        "pass the repository path explicitly"
    )


def open_repository(path: Path) -> Path:
    """明示されたパスを検証し、リポジトリのルートを返す。"""
    path = path.expanduser().resolve()
    if not path.is_dir():
        raise RepositoryNotFound(f"path does not exist or is not a directory: {path}")
    top = _show_toplevel(path)
    if top is None:
        raise RepositoryNotFound(f"not a git repository: {path}")
    return top
