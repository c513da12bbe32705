"""branch-tools の例外。

呼び出し側（CLI）が種類ごとに分岐できるよう、文字列ではなく型で区別する。
コアはリトライしない。必要なら hook 側で再実行する。
"""

from __future__ import annotations


class BranchToolsError(RuntimeError):
    """branch-tools が投げる例外の基底。"""


class RemoteUnreachable(BranchToolsError):
    """リモートと通信できない（ネットワーク/認証/タイムアウト）。"""


class GitQueryFailed(BranchToolsError):
    """ローカルの git クエリが想定外の理由で失敗した。"""


class DetachedOrUnknownHead(GitQueryFailed):
    """HEAD が名前付きブランチを指していない。"""


class BuildBehindRemote(BranchToolsError):
    """ローカルの build.txt がリモートより古い（先に pull が必要）。"""


class OriginUndetermined(BranchToolsError):
    """reflog / merge-base のどちらでも派生元ブランチを決められなかった。"""


class WriteDenied(BranchToolsError):
    """build.txt やワークフローファイルに書き込めない。"""


class RepositoryNotFound(BranchToolsError):
    """git リポジトリを見つけられない。"""


class WorkflowPatchFailed(BranchToolsError):
    """パッチ後のワークフローが YAML として読めない。"""
