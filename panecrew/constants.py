"""Constants used across panecrew.

Internal layout and protocol values (not user-configurable).
"""

# Directory under the git common dir that holds all run state
NAMESPACE = "panecrew"
RUNS_DIRNAME = "runs"
LOGS_DIRNAME = "logs"

# Per-repo config location (relative to the repo root)
CONFIG_DIRNAME = ".panecrew"
CONFIG_FILENAME = "config.yml"

# Defaults for user-configurable settings
DEFAULT_DATA_REF = "refs/panecrew/data"
DEFAULT_BUDGET = "5.00"
DEFAULT_BRANCH = "main"
DEFAULT_REMOTE = "origin"

# Branch prefixes per run type
AGENT_BRANCH_PREFIX = "agent/"
SESSION_BRANCH_PREFIX = "session/"
SESSION_ID_PREFIX = "session-"
SESSION_PROMPT = "(interactive session)"

# Data ref commit messages
DATA_REF_INIT_MESSAGE = "Initialize panecrew run data"

# PR link heuristic: a token must contain both fragments
PR_HOST_FRAGMENT = "github.com/"
PR_PATH_FRAGMENT = "/pull/"
PR_TRAILING_PUNCTUATION = ".,;:!?)"

# Scrollback captured when showing a live pane
LIVE_CAPTURE_HISTORY_LINES = 500

# Git blob mode used for every published file
DATA_REF_FILE_MODE = "100644"
