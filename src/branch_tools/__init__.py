"""branch-tools: build.txt とワークフローをリモートブランチに同期させる git hook 用CLI。"""

__version__ = "1.4.0"
