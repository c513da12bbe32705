"""branch-tools CLI エントリポイント。"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import typer
from rich.console import Console

from branch_tools import __version__
from branch_tools.build_number import (
    BuildNumberAllocator,
    BuildState,
    compare_builds,
)
from branch_tools.config import CONFIG_FILE_NAME, ToolConfig, load_config
from branch_tools.errors import (
    BranchToolsError,
    BuildBehindRemote,
    DetachedOrUnknownHead,
    OriginUndetermined,
    RemoteUnreachable,
    WorkflowPatchFailed,
)
from branch_tools.git_ops import GitRepo, detect_repository, open_repository
from branch_tools.hooks import install_hooks
from branch_tools.logging_setup import setup_logging
from branch_tools.origin import OriginResolver
from branch_tools.render import (
    render_csv,
    render_json,
    render_list,
    render_suggestions,
    render_table,
)
from branch_tools.scheduler import schedule_async_command
from branch_tools.update_check import (
    UpdateCheckTracker,
    check_for_update,
    check_for_update_silently,
    default_tracker_path,
)
from branch_tools.workflow import WorkflowPatcher

APP_HELP = "🌿 build.txt と CI ワークフローをリモートブランチに合わせる git hook 用CLI"

TRIGGER_BUILD_MESSAGE = "[ci_build] Trigger build"
CLEANUP_COMMIT_MESSAGE = (
    "chore: restore workflow files and build.txt to parent branch state\n\n"
    "Prepare branch for merge by reverting branch-specific changes\n"
    "to workflow YAML files and build number to match parent branch."
)
PUSH_DONE_MESSAGE = "Push completed! You still have to create MR/PR manually"

RENDERERS = {
    "table": render_table,
    "json": render_json,
    "csv": render_csv,
    "list": render_list,
}
OUTPUT_FORMATS = (*RENDERERS, "suggest")
MACHINE_FORMATS = ("json", "csv")

app = typer.Typer(add_completion=False, help=APP_HELP)
console = Console(highlight=False, markup=False, soft_wrap=True)
err_console = Console(stderr=True, highlight=False, markup=False, soft_wrap=True)


class RichUi:
    """進捗/確認のやりとり。JSON/CSV 出力時は stderr 側に出す。"""

    def __init__(self, out: Console) -> None:
        self.out = out

    def section(self, title: str) -> None:
        self.out.print(f"=== {title} ===", style="bold cyan")
        self.out.print()

    def log(self, line: str) -> None:
        self.out.print(f"  {line}")

    def step(self, title: str) -> None:
        self.out.print(f"→ {title}", style="yellow")

    def ok(self, message: str) -> None:
        self.out.print(f"✅ {message}", style="green")

    def warn(self, message: str) -> None:
        self.out.print(f"⚠️  {message}", style="yellow")

    def error(self, message: str) -> None:
        self.out.print(f"❌ {message}", style="red")

    def confirm(self, text: str, default: bool = False) -> bool:
        return typer.confirm(text, default=default, err=self.out.stderr)

    def prompt(self, text: str, default: str) -> str:
        return str(typer.prompt(text, default=default, err=self.out.stderr))

    def progress(self, index: int, total: int, branch: str) -> None:
        if not err_console.is_terminal:
            return
        err_console.print(f"   Scanning: [{index}/{total}] {branch[:60]:<60}", style="dim", end="\r")
        if index == total:
            err_console.print()


@dataclass
class Workspace:
    root: Path
    config: ToolConfig
    git: GitRepo

    @property
    def allocator(self) -> BuildNumberAllocator:
        return BuildNumberAllocator(self.git, min_build_number=self.config.build.min_build_number)

    @property
    def resolver(self) -> OriginResolver:
        return OriginResolver(self.git, self.config.branches.base)

    @property
    def patcher(self) -> WorkflowPatcher:
        return WorkflowPatcher(
            self.root,
            branch_var=self.config.workflows.branch_var,
            push_branches=self.config.workflows.push_branches,
        )


def _open(repo: Path | None, remote: str | None = None) -> Workspace:
    root = open_repository(repo) if repo is not None else detect_repository()
    config = load_config(root / CONFIG_FILE_NAME)
    git = GitRepo(
        root,
        remote=remote or config.git.remote,
        build_file=config.build.file,
        timeout=config.git.timeout,
    )
    if config.update.auto_check:
        _auto_update_notice(config)
    return Workspace(root=root, config=config, git=git)


def _auto_update_notice(config: ToolConfig) -> None:
    tracker = UpdateCheckTracker(default_tracker_path())
    if not tracker.should_check():
        return
    info = check_for_update_silently(__version__, config.update.release_url)
    tracker.mark_checked()
    if info is not None and info.update_available:
        err_console.print(
            f"⬆️  branch-tools {info.version} is available (current {__version__}): {info.url}",
            style="yellow",
        )


def _fail(ui: RichUi, message: str) -> None:
    ui.error(message)
    raise typer.Exit(code=1)


@app.callback()
def main(
    log_level: str = typer.Option("INFO", "--log-level", help="ログレベル (DEBUG/INFO/WARNING)"),
) -> None:
    setup_logging(level=log_level)


# --- build-info ---


def _check_local_vs_remote(ws: Workspace, ui: RichUi) -> bool:
    """ローカルとリモートの build.txt を比べる。False なら処理を止める。"""
    try:
        branch = ws.git.current_branch()
    except DetachedOrUnknownHead:
        return True

    local = ws.git.read_build_number()
    if local is None:
        return True

    remote = ws.git.remote_build_number(branch)
    state = compare_builds(local, remote)
    ui.log(f"Current branch: {branch}")
    ui.log(f"Local build.txt:  {local}")

    if state is BuildState.NO_REMOTE:
        ui.log("ℹ️  No remote branch found or remote has no build.txt.")
        return True

    ui.log(f"Remote build.txt: {remote}")

    if state is BuildState.BEHIND:
        ui.warn("Remote build.txt is newer!")
        if ui.confirm("Your local branch is behind the remote. Pull changes?"):
            ws.git.pull(branch)
            ui.ok("Successfully pulled changes")
            return True
        ui.error("Pull rejected. Cannot continue with outdated local branch.")
        return False

    if state is BuildState.AHEAD:
        ui.ok(f"Local build.txt is ahead of remote. Proceeding with {local}.")
        return True

    ui.ok("Local build.txt is up to date")
    if not ui.confirm(f"Do you want to auto-increment the build number to {local + 1}?"):
        ui.ok("Build number not changed")
        return True

    ui.step(f"Checking if build number {local + 1} is already taken...")
    plan = ws.allocator.plan_increment(local, ws.allocator.collect_all(progress=ui.progress))
    new_number = plan.candidate
    if plan.taken_by is not None:
        ui.error(f"Cannot use build number {plan.candidate} - it's already taken by: {plan.taken_by}")
        if not ui.confirm(f"Use build number {plan.proposed} instead?"):
            ui.ok("Build number not changed")
            return True
        new_number = plan.proposed

    path = ws.git.write_build_number(new_number)
    ui.ok(f"Successfully updated build number to {new_number}")
    ui.log(f"Updated: {path}")
    return True


@app.command("build-info")
def build_info(
    repo: Path | None = typer.Argument(None, help="git リポジトリのパス（省略時は自動検出）"),
    remote: str | None = typer.Option(None, "--remote", "-r", help="リモート名"),
    output: str = typer.Option(
        "table", "--output", "-o", help="出力形式 (table, json, csv, list, suggest)"
    ),
    scan_all: bool = typer.Option(
        False, "--scan-all", "-s", help="全リモートブランチをスキャンする（table 以外は常に有効）"
    ),
    min_gap: int | None = typer.Option(None, "--min-gap", help="提案に必要な最小間隔"),
    fetch: bool = typer.Option(False, "--fetch", help="スキャン前に git fetch する"),
) -> None:
    """リモートブランチの build.txt を集めて、衝突と空き番号を表示する。"""
    ui = RichUi(err_console if output in MACHINE_FORMATS else console)
    if output not in OUTPUT_FORMATS:
        _fail(ui, f"Unknown output format: {output} (choose from {', '.join(OUTPUT_FORMATS)})")

    try:
        ws = _open(repo, remote)
        ui.log(f"Repository: {ws.root}")

        if not _check_local_vs_remote(ws, ui):
            raise typer.Exit(code=1)

        if output != "table":
            scan_all = True
        if not scan_all:
            ui.ok("Current branch check complete.")
            ui.log("Use --scan-all to scan all remote branches and find build number gaps.")
            return

        if fetch:
            ws.git.fetch()
        numbers = ws.allocator.collect_all(progress=ui.progress)
        ui.log(f"Found build.txt in {len(numbers)} branches")

        if output == "suggest":
            gap = min_gap if min_gap is not None else ws.config.build.min_gap
            try:
                current_branch: str | None = ws.git.current_branch()
            except DetachedOrUnknownHead:
                current_branch = None
            if not numbers:
                typer.echo("No build numbers found.")
                return
            typer.echo(
                render_suggestions(
                    ws.allocator.suggest_gaps(numbers, gap),
                    min_gap=gap,
                    current_branch=current_branch,
                    current_build=numbers.get(current_branch) if current_branch else None,
                )
            )
            return

        neighbors = ws.allocator.compute_neighbors(numbers)
        typer.echo(RENDERERS[output](numbers, neighbors))
    except (BranchToolsError, ValueError) as e:
        _fail(ui, f"Error: {e}")


# --- prepare-commit ---


def _update_workflows(ws: Workspace, branch: str, ui: RichUi, auto: bool) -> bool:
    ui.step("Checking workflow files...")
    try:
        origin = ws.resolver.resolve_origin(branch)
        ui.log(f"Origin branch: {origin.branch}")
        ui.log(f"Detection: {origin.method.label}")
        update = ws.patcher.update(branch, origin.branch)
    except (OriginUndetermined, WorkflowPatchFailed) as e:
        if not auto:
            ui.error(f"Workflow update failed: {e}")
        return False

    if update.changed:
        ui.ok("Workflow files updated")
    else:
        ui.ok("Workflow files already up to date")
    return update.changed


def _claim_from_gaps(ws: Workspace, ui: RichUi, auto: bool, local: int) -> bool:
    """リモートに build.txt が無いブランチ: 空き番号から選ぶ。"""
    ui.log("No remote build.txt found")
    ui.log(f"Local build: {local}")
    ui.step("Scanning for available build numbers...")

    allocator = ws.allocator
    min_gap = ws.config.build.min_gap
    numbers = allocator.collect_all(progress=ui.progress)
    if not numbers:
        return False

    # numbers が空でなければ末尾（上限なし）の提案が必ずある
    suggestions = allocator.suggest_gaps(numbers, min_gap)

    ui.log("Available build numbers (gaps):")
    for i, s in enumerate(suggestions[:5], start=1):
        before = "END" if s.before is None else s.before
        gap = "∞" if s.gap is None else s.gap
        ui.log(f"  {i}. {s.number} (gap: {gap}, between {s.after} and {before})")

    if auto:
        new_number = allocator.auto_select(numbers, local, min_gap, progress=ui.progress)
        ui.ok(f"Auto-selected build number {new_number}")
    else:
        suggested = {s.number for s in suggestions}
        while True:
            answer = ui.prompt(
                f"Enter build number to claim (or press Enter to keep {local})", default=str(local)
            )
            try:
                chosen = int(answer.strip())
            except ValueError:
                ui.error(f"'{answer}' is not a number.")
                continue
            if chosen == local:
                new_number = local
                break
            if chosen not in suggested:
                ui.error(
                    f"Build number {chosen} is not in the suggested list. "
                    "Please choose from the suggested gaps."
                )
                continue
            # 他の人が先に取っていないか、最新の状態で確認し直す
            taken_by = allocator.is_taken(chosen, allocator.collect_all(progress=ui.progress))
            if taken_by is not None:
                ui.error(f"Build number {chosen} is already taken by {taken_by}")
                continue
            new_number = chosen
            break

    if new_number == local:
        return False
    ws.git.write_build_number(new_number)
    ui.ok(f"Build number updated to {new_number}")
    return True


def _update_build_number(ws: Workspace, branch: str, ui: RichUi, auto: bool) -> bool:
    ui.step("Checking build number...")
    local = ws.git.read_build_number()
    if local is None:
        ui.log(f"No {ws.config.build.file} found")
        return False

    remote = ws.git.remote_build_number(branch)
    state = compare_builds(local, remote)

    if state is BuildState.NO_REMOTE:
        return _claim_from_gaps(ws, ui, auto, local)

    if state is BuildState.BEHIND:
        ui.error(f"Local build ({local}) is behind remote ({remote})")
        if auto:
            raise BuildBehindRemote(
                "Cannot auto-update: local build is behind remote. Please pull changes first."
            )
        if ui.confirm("Pull changes from remote?"):
            ws.git.pull(branch)
            ui.ok("Changes pulled")
            return False
        raise BuildBehindRemote("Build number is behind remote. Cannot proceed.")

    if state is BuildState.AHEAD:
        ui.log(f"Local build ({local}) is ahead of remote ({remote})")
        ui.ok("Build number is ready")
        return False

    ui.log(f"Current build: {local}")
    if not auto and not ui.confirm(f"Auto-increment to {local + 1}?"):
        ui.ok("Build number not changed")
        return False

    ui.log(f"Validating build number {local + 1}...")
    plan = ws.allocator.plan_increment(local, ws.allocator.collect_all(progress=ui.progress))
    new_number = plan.candidate
    if plan.taken_by is not None:
        ui.warn(f"Build {plan.candidate} is taken by: {plan.taken_by}")
        if not auto and not ui.confirm(f"Use {plan.proposed} instead?", default=True):
            ui.ok("Build number not changed")
            return False
        new_number = plan.proposed

    ws.git.write_build_number(new_number)
    ui.ok(f"Build number updated to {new_number}")
    return True


@app.command("prepare-commit")
def prepare_commit(
    repo: Path | None = typer.Argument(None, help="git リポジトリのパス（省略時は自動検出）"),
    auto: bool = typer.Option(False, "--auto", "-a", help="確認なしで自動更新する"),
    skip_workflows: bool = typer.Option(False, "--skip-workflows", help="ワークフロー更新をしない"),
    skip_build: bool = typer.Option(False, "--skip-build", help="build 番号更新をしない"),
) -> None:
    """コミット前の準備（pre-commit hook 用）: ワークフローと build 番号を更新する。"""
    ui = RichUi(console)
    ui.section("Prepare Commit")

    try:
        ws = _open(repo)
        branch = ws.git.current_branch()
        ui.log(f"Current branch: {branch}")

        if not ws.git.has_staged_changes():
            ui.log("⊘ No staged changes detected - skipping all updates")
            ui.ok("Empty commit - no preparation needed")
            return

        workflows_updated = False
        if branch in ws.config.branches.protected:
            ui.log("⊘ Skipping workflow updates (main branch)")
        elif not skip_workflows:
            workflows_updated = _update_workflows(ws, branch, ui, auto)

        build_updated = False
        if not skip_build:
            build_updated = _update_build_number(ws, branch, ui, auto)
    except BranchToolsError as e:
        _fail(ui, f"Error: {e}")
        return

    ui.section("Summary")
    if workflows_updated or build_updated:
        ui.ok("Repository prepared for commit")
        if workflows_updated:
            ui.log("• Workflow files updated")
        if build_updated:
            ui.log("• Build number updated")
    else:
        ui.ok("No changes needed")


# --- workflow / origin ---


@app.command("workflow-update")
def workflow_update(
    repo: Path | None = typer.Argument(None, help="git リポジトリのパス（省略時は自動検出）"),
) -> None:
    """現在のブランチと派生元を GitHub ワークフローに登録する。"""
    ui = RichUi(console)
    ui.section("GitHub Workflow Branch Updater")

    try:
        ws = _open(repo)
        branch = ws.git.current_branch()
        ui.log(f"Current branch: {branch}")
        if branch in ws.config.branches.protected:
            _fail(ui, "Current branch is a main branch. Skipping update.")
        if ws.patcher.branch_registered(branch):
            ui.ok("No updates needed - branch already registered in workflow files.")
            return

        origin = ws.resolver.resolve_origin(branch)
        ui.log(f"Origin branch: {origin.branch}")
        ui.log(f"Detection method: {origin.method.label}")
        ui.log(f"Detection info: {origin.evidence}")

        update = ws.patcher.update(branch, origin.branch)
    except BranchToolsError as e:
        _fail(ui, f"Error: {e}")
        return

    if not update.changed:
        ui.ok("No updates needed - branch already exists in workflow files.")
        return

    ui.ok("Workflow files updated successfully!")
    paths = " ".join(ws.config.workflows.paths())
    ui.log("Next steps:")
    ui.log("1. Review the changes: git diff")
    ui.log(f"2. Commit the changes: git add {paths} && git commit -m 'Update workflows for {branch}'")
    ui.log("3. Push the changes: git push")


@app.command()
def origin(
    repo: Path | None = typer.Argument(None, help="git リポジトリのパス（省略時は自動検出）"),
    branch: str | None = typer.Option(None, "--branch", "-b", help="対象ブランチ（省略時は現在のブランチ）"),
) -> None:
    """ブランチの派生元を推定して表示する。"""
    ui = RichUi(console)
    try:
        ws = _open(repo)
        target = branch or ws.git.current_branch()
        result = ws.resolver.resolve_origin(target)
    except BranchToolsError as e:
        _fail(ui, f"Error: {e}")
        return

    ui.log(f"Branch: {target}")
    ui.log(f"Origin branch: {result.branch}")
    ui.log(f"Detection method: {result.method.label}")
    ui.log(f"Detection info: {result.evidence}")


# --- cleanup / trigger ---


@app.command("cleanup-branch")
def cleanup_branch(
    repo: Path | None = typer.Argument(None, help="git リポジトリのパス（省略時は自動検出）"),
) -> None:
    """マージ前に、ワークフローと build.txt を派生元ブランチの状態に戻してコミット/push する。"""
    ui = RichUi(console)
    ui.section("Branch Cleanup - Restore Files to Parent Branch State")

    try:
        ws = _open(repo)
        branch = ws.git.current_branch()
        try:
            parent = ws.resolver.resolve_origin(branch).branch
        except OriginUndetermined as e:
            _fail(ui, f"Could not detect parent branch: {e}")
            return
        ui.log(f"Current branch: {branch}")
        ui.log(f"Parent branch: {parent}")

        ref = f"{ws.git.remote}/{parent}"
        changed = [
            f
            for f in ws.config.managed_files()
            if ws.git.read_file_at_branch_tip(parent, f) is not None and ws.git.differs_from(ref, f)
        ]
        if not changed:
            ui.ok("All files are already in sync with parent branch. Nothing to do!")
            return

        ui.log("Files to restore:")
        for f in changed:
            ui.log(f"  • {f}")

        for f in changed:
            ws.git.checkout_path(ref, f)
            ui.log(f"✓ Restored: {f}")

        ws.git.commit(CLEANUP_COMMIT_MESSAGE, no_verify=True)
        ui.ok("Changes committed successfully (hooks bypassed)")

        try:
            ws.git.push(no_verify=True)
        except RemoteUnreachable as e:
            ui.error(f"Failed to push changes: {e}")
            _fail(ui, "You can manually push with: git push --no-verify")
    except BranchToolsError as e:
        _fail(ui, f"Error: {e}")
        return

    ui.ok("Changes pushed successfully!")
    ui.log(f"Your branch is now ready to merge into {parent}.")


@app.command("trigger-build")
def trigger_build(
    repo: Path | None = typer.Argument(None, help="git リポジトリのパス（省略時は自動検出）"),
    auto: bool = typer.Option(False, "--auto", "-a", help="確認せずにトリガーコミットを作る"),
    skip: bool = typer.Option(False, "--skip", "-s", help="何もしない（hook のバイパス用）"),
) -> None:
    """pre-push hook 用: CI ビルド用の空コミットを作り、push をやり直す。"""
    if skip:
        return

    ui = RichUi(console)
    try:
        ws = _open(repo)
        if ws.git.last_commit_is_empty():
            return
        if TRIGGER_BUILD_MESSAGE in ws.git.last_commit_message():
            return

        if not auto:
            ui.log("🚀 You are about to push commits with changes.")
            if not ui.confirm("Would you like to trigger a CI/CD build?"):
                ui.log("Skipping CI/CD trigger.")
                return

        ui.log("Creating trigger commit...")
        ws.git.commit(TRIGGER_BUILD_MESSAGE, no_verify=True, allow_empty=True)
        ui.ok(f"CI/CD trigger commit created! ({TRIGGER_BUILD_MESSAGE})")

        set_upstream = None if ws.git.has_upstream() else ws.git.current_branch()
        push_cmd = ws.git.command(ws.git.push_args(no_verify=True, set_upstream=set_upstream))
        schedule_async_command(push_cmd, delay=1, success_message=PUSH_DONE_MESSAGE)
    except BranchToolsError as e:
        _fail(ui, f"Error: {e}")
        return

    ui.ok("Automatic push scheduled!")
    ui.log("Note: The current push will be cancelled to allow the trigger commit to be pushed.")
    ui.log("The push will execute automatically in a moment...")
    # 元の push は止める（トリガーコミット込みで再 push される）
    raise typer.Exit(code=1)


# --- setup / maintenance ---


@app.command("install-hooks")
def install_hooks_cmd(
    repo: Path | None = typer.Argument(None, help="git リポジトリのパス（省略時は自動検出）"),
    force: bool = typer.Option(False, "--force", help="既存の hook を .bak に退避して上書きする"),
) -> None:
    """pre-commit / pre-push hook をインストールする。"""
    ui = RichUi(console)
    try:
        ws = _open(repo)
        results = install_hooks(
            ws.git.hooks_dir(),
            staged_files=ws.config.managed_files(),
            force=force,
        )
    except BranchToolsError as e:
        _fail(ui, f"Error: {e}")
        return

    for r in results:
        if r.action == "skipped":
            ui.warn(f"{r.name}: existing hook kept ({r.path}). Use --force to replace it.")
        else:
            ui.ok(f"{r.name}: {r.action} ({r.path})")


@app.command("check-update")
def check_update(
    snooze: bool = typer.Option(False, "--snooze", help="今日は自動チェックの通知を出さない"),
) -> None:
    """新しいリリースがあるか確認する。"""
    ui = RichUi(console)
    if snooze:
        UpdateCheckTracker(default_tracker_path()).skip_until_tomorrow()
        ui.log("Update check skipped. You won't be reminded again today.")
        return

    try:
        config = load_config(detect_repository() / CONFIG_FILE_NAME)
    except BranchToolsError:
        config = ToolConfig()

    try:
        info = check_for_update(__version__, config.update.release_url)
    except BranchToolsError as e:
        _fail(ui, f"Error: {e}")
        return

    ui.log(f"Current version: {__version__}")
    ui.log(f"Latest version:  {info.version or '?'}")
    if info.update_available:
        ui.warn(f"A new version of branch-tools is available: {info.url}")
    else:
        ui.ok("branch-tools is up to date")
