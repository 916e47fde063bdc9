"""Badge Deploy: publish environment/version SVG badges to a GitHub repository.

This package provides the command-line interface, the badge renderer, and the
operational logic that commits a badge, opens a pull request for it, and
merges that pull request through the GitHub REST API.
"""

from . import (
    badge,
    cli,
    config,
    constants,
    git_wrapper,
    github,
    ops,
    retry,
)

__all__ = [
    "badge",
    "cli",
    "config",
    "constants",
    "git_wrapper",
    "github",
    "ops",
    "retry",
]
