"""Global constants for Badge Deploy.

This module defines the application identifiers, the fixed badge geometry and
palette, and the default publish/retry settings used across the application.
"""

# --- Identity ---
APP_NAME = "badge-deploy"
"""str: The human-readable application name (also the logger name)."""

CONFIG_FILE_NAME = "badge-deploy.toml"
"""str: The project-local configuration file searched in the working directory."""

PYPROJECT_SECTION = "tool.badge-deploy"
"""str: The pyproject.toml section holding configuration when no local file exists."""

# --- Badge Geometry ---
BADGE_HEIGHT = 20
"""int: Height of the rendered badge in SVG user units."""

LEFT_PADDING = 28
"""int: Horizontal padding around the environment label (14 per side)."""

RIGHT_PADDING = 12
"""int: Horizontal padding around the version label (6 per side)."""

CORNER_ALLOWANCE = 4
"""int: Extra width reserved for the rounded right edge."""

FONT_FAMILY = "'DejaVu Sans',Verdana,Geneva,sans-serif"
FONT_SIZE = 11
FONT_FILE = "DejaVuSans.ttf"
"""str: TrueType file used to measure label widths."""

# --- Badge Palette ---
COLORS = {
    "workflow_gradient_start": "#444D56",
    "workflow_gradient_end": "#24292E",
    "state_gradient_start": "#959DA5",
    "state_gradient_end": "#6A737D",
    "text_shadow": "#010101",
    "text": "#FFFFFF",
}
"""dict[str, str]: Fill colours for the two badge segments and the labels."""

# --- Publish Defaults ---
GITHUB_API_URL = "https://api.github.com"
GITHUB_HOST = "github.com"

BADGE_DIR = "badges"
"""str: Directory (inside the target repository) holding published badges."""

PR_LABEL = "badge"
PR_MILESTONE = "Badges"

COMMIT_AUTHOR_NAME = "Badge Action"
COMMIT_AUTHOR_EMAIL = "badge@action.com"

MERGE_METHOD = "merge"

MAX_MERGE_ATTEMPTS = 10
"""int: Upper bound on rebase-then-merge attempts for the badge pull request."""

HTTP_TIMEOUT = 30.0
"""float: Seconds before a GitHub API request is abandoned."""

# --- Retry Policies (attempts, delay in seconds) ---
CLONE_RETRY = (2, 0.5)
PUSH_RETRY = (2, 2.0)
PULL_REQUEST_RETRY = (5, 2.0)
