"""panecrew - parallel coding agents in git worktrees and tmux panes."""

__version__ = "0.1.0"
