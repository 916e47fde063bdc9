import logging
import os
import re
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

from .constants import (
    APP_NAME,
    BADGE_DIR,
    CLONE_RETRY,
    COMMIT_AUTHOR_EMAIL,
    COMMIT_AUTHOR_NAME,
    CONFIG_FILE_NAME,
    FONT_SIZE,
    GITHUB_API_URL,
    GITHUB_HOST,
    HTTP_TIMEOUT,
    MAX_MERGE_ATTEMPTS,
    MERGE_METHOD,
    PR_LABEL,
    PR_MILESTONE,
    PULL_REQUEST_RETRY,
    PUSH_RETRY,
    PYPROJECT_SECTION,
)

logger = logging.getLogger(APP_NAME)

# Environment variable names per run field. The lower-case names are the
# GitHub Action inputs; the prefixed names are for shells and other CI systems.
ENV_VARS: dict[str, tuple[str, ...]] = {
    "environment": ("environment", "BADGE_ENVIRONMENT"),
    "version": ("version", "BADGE_VERSION"),
    "token": ("token", "BADGE_TOKEN", "GITHUB_TOKEN"),
    "branch": ("branch", "BADGE_BRANCH"),
    "repo": ("repo", "BADGE_REPO"),
    "source": ("BADGE_SOURCE", "GITHUB_REPOSITORY"),
}


class ConfigError(ValueError):
    """Raised when required settings are missing or malformed."""


def parse_delay(value: int | float | str) -> float:
    """Converts human-readable delays (e.g., '500ms', '2s', '1m') to seconds."""
    if isinstance(value, (int, float)):
        if value < 0:
            raise ValueError(f"Delay must not be negative, got {value}")
        return float(value)
    match = re.match(
        r"^(\d+(?:\.\d+)?)\s*(ms|s|sec|m|min)?$", str(value).strip().lower()
    )
    if not match:
        raise ValueError(f"Invalid delay format '{value}'")
    num, unit = float(match.group(1)), match.group(2) or "s"
    multiplier = {"ms": 0.001, "s": 1, "sec": 1, "m": 60, "min": 60}
    return num * multiplier[unit]


@dataclass
class RunConfig:
    """Per-invocation inputs, normally supplied by the CI environment.

    Attributes:
        environment (str): Environment name shown on the left of the badge.
        version (str): Version shown on the right of the badge.
        token (str): GitHub token with push and admin-merge rights on the target.
        branch (str): Base branch of the target repository.
        repo (str): Target repository, as 'name' (owner taken from `source`) or 'owner/name'.
        source (str): The 'owner/name' of the repository the badge describes.
    """

    environment: str = ""
    version: str = ""
    token: str = field(default="", repr=False)
    branch: str = ""
    repo: str = ""
    source: str = ""


@dataclass
class BadgeConfig:
    """Badge output settings.

    Attributes:
        directory (str): Directory inside the target repository holding badges.
        font_size (int): Font size used for rendering and measuring labels.
    """

    directory: str = BADGE_DIR
    font_size: int = FONT_SIZE


@dataclass
class GitHubConfig:
    """GitHub connection settings.

    Attributes:
        api_url (str): REST API root (override for GitHub Enterprise).
        host (str): Git host used to build the clone URL.
        timeout (float): Per-request timeout in seconds.
    """

    api_url: str = GITHUB_API_URL
    host: str = GITHUB_HOST
    timeout: float = HTTP_TIMEOUT


@dataclass
class PullRequestConfig:
    """Pull request and merge settings.

    Attributes:
        label (str): Label attached to the badge pull request.
        milestone (str): Title of the milestone attached to the pull request.
        author_name (str): Commit author name.
        author_email (str): Commit author email.
        merge_method (str): 'merge', 'squash', or 'rebase'.
        max_merge_attempts (int): Cap on rebase-then-merge attempts.
        merge_delay (float): Seconds to wait between merge attempts.
    """

    label: str = PR_LABEL
    milestone: str = PR_MILESTONE
    author_name: str = COMMIT_AUTHOR_NAME
    author_email: str = COMMIT_AUTHOR_EMAIL
    merge_method: str = MERGE_METHOD
    max_merge_attempts: int = MAX_MERGE_ATTEMPTS
    merge_delay: float = 2.0


@dataclass
class RetryConfig:
    """Attempts and fixed delays for the network-bound steps."""

    clone_attempts: int = CLONE_RETRY[0]
    clone_delay: float = CLONE_RETRY[1]
    push_attempts: int = PUSH_RETRY[0]
    push_delay: float = PUSH_RETRY[1]
    pull_request_attempts: int = PULL_REQUEST_RETRY[0]
    pull_request_delay: float = PULL_REQUEST_RETRY[1]


@dataclass
class Config:
    """Global configuration aggregator.

    Attributes:
        run (RunConfig): Per-invocation inputs.
        badge (BadgeConfig): Badge output settings.
        github (GitHubConfig): API connection settings.
        pull_request (PullRequestConfig): Pull request and merge settings.
        retry (RetryConfig): Retry policies.
    """

    run: RunConfig = field(default_factory=RunConfig)
    badge: BadgeConfig = field(default_factory=BadgeConfig)
    github: GitHubConfig = field(default_factory=GitHubConfig)
    pull_request: PullRequestConfig = field(default_factory=PullRequestConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)

    @classmethod
    def load(
        cls,
        config_path: Path | None = None,
        env: Mapping[str, str] | None = None,
        cwd: Path | None = None,
    ) -> "Config":
        """Builds the configuration from defaults, a TOML file, and the environment.

        Args:
            config_path (Path | None): Explicit TOML file. When omitted,
                `badge-deploy.toml` or `[tool.badge-deploy]` in `pyproject.toml`
                is searched in `cwd`.
            env (Mapping[str, str] | None): Environment variables. Defaults to os.environ.
            cwd (Path | None): Directory searched for a config file. Defaults to CWD.

        Returns:
            Config: The merged configuration object.
        """
        instance = cls()

        if config_path is not None:
            if not config_path.exists():
                raise ConfigError(f"Config file not found: {config_path}")
            instance._merge_from_file(config_path)
        else:
            base = cwd or Path.cwd()
            local_toml = base / CONFIG_FILE_NAME
            pyproject = base / "pyproject.toml"
            if local_toml.exists():
                instance._merge_from_file(local_toml)
            elif pyproject.exists():
                instance._merge_from_file(pyproject, section=PYPROJECT_SECTION)

        instance._merge_from_env(os.environ if env is None else env)
        return instance

    def _merge_from_file(self, path: Path, section: str | None = None) -> None:
        """Parses a TOML file and merges it into the current instance.

        Args:
            path (Path): Path to the TOML file.
            section (str | None): Dot-separated section path (e.g., 'tool.badge-deploy').
        """
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)

            if section:
                for key in section.split("."):
                    data = data.get(key, {})

            if not data:
                return

            for name in ("run", "badge", "github", "pull_request", "retry"):
                if name in data:
                    setattr(
                        self,
                        name,
                        self._update_dataclass(name, getattr(self, name), data[name]),
                    )

            unknown = set(data) - {f.name for f in fields(self)}
            if unknown:
                logger.warning(
                    f"Unknown config sections in {path.name}: {', '.join(sorted(unknown))}. Ignoring."
                )

        except tomllib.TOMLDecodeError as e:
            logger.error(f"Config syntax error in {path}: {e}")
        except OSError as e:
            logger.warning(f"Failed to load config from {path}: {e}")

    def _merge_from_env(self, env: Mapping[str, str]) -> None:
        updates = {}
        for key, names in ENV_VARS.items():
            for name in names:
                if env.get(name):
                    updates[key] = env[name].strip()
                    break
        if updates:
            self.run = replace(self.run, **updates)

    def apply_overrides(self, **overrides: str | None) -> None:
        """Applies non-empty command-line values on top of the run settings."""
        updates = {k: v for k, v in overrides.items() if v}
        if updates:
            self.run = replace(self.run, **updates)

    @staticmethod
    def _update_dataclass(section_name: str, instance: Any, updates: dict) -> Any:
        """Updates a dataclass, warning on invalid keys and parsing human-readable delays."""
        valid_keys = instance.__dataclass_fields__.keys()
        filtered_updates = {}

        invalid_keys = set(updates.keys()) - set(valid_keys)
        if invalid_keys:
            logger.warning(
                f"Unknown config keys in [{section_name}]: {', '.join(sorted(invalid_keys))}. Ignoring."
            )

        for k, v in updates.items():
            if k not in valid_keys:
                continue

            try:
                if k.endswith("_delay"):
                    filtered_updates[k] = parse_delay(v)
                elif k == "timeout":
                    filtered_updates[k] = parse_delay(v)
                    if filtered_updates[k] <= 0:
                        raise ValueError("must be greater than zero")
                elif k == "font_size":
                    if isinstance(v, bool) or not isinstance(v, int) or v < 1:
                        raise ValueError(f"expected a positive integer, got {v!r}")
                    filtered_updates[k] = v
                elif k.endswith("_attempts"):
                    filtered_updates[k] = int(v)
                    if filtered_updates[k] < 1:
                        raise ValueError("must be at least 1")
                else:
                    filtered_updates[k] = v
            except (TypeError, ValueError) as e:
                filtered_updates.pop(k, None)
                logger.warning(
                    f"Config error in [{section_name}].{k}: {e}. Falling back to default."
                )

        return replace(instance, **filtered_updates)

    # --- Derived values ---

    def validate(self) -> None:
        """Checks that every required input is present and well-formed.

        Raises:
            ConfigError: Listing every missing or malformed value.
        """
        run = self.run
        missing = [
            name
            for name in ("environment", "version", "token", "branch", "repo", "source")
            if not getattr(run, name)
        ]
        if missing:
            raise ConfigError(
                "Missing required settings: "
                + ", ".join(missing)
                + ". Provide them via flags or environment variables."
            )
        if run.source.count("/") != 1 or not all(run.source.split("/")):
            raise ConfigError(f"Source repository must be 'owner/name', got '{run.source}'")
        if run.repo.count("/") > 1 or not all(run.repo.split("/")):
            raise ConfigError(f"Target repository must be 'name' or 'owner/name', got '{run.repo}'")
        if "/" in run.environment or run.environment in (".", ".."):
            raise ConfigError(f"Environment name cannot be a path: '{run.environment}'")

    @property
    def source_owner(self) -> str:
        return self.run.source.split("/")[0]

    @property
    def source_name(self) -> str:
        return self.run.source.split("/")[-1]

    @property
    def target_owner(self) -> str:
        if "/" in self.run.repo:
            return self.run.repo.split("/")[0]
        return self.source_owner

    @property
    def target_name(self) -> str:
        return self.run.repo.split("/")[-1]

    @property
    def badge_path(self) -> str:
        """Path of the badge inside the target repository."""
        return f"{self.badge.directory}/{self.source_name}/{self.run.environment}.svg"

    @property
    def pr_branch(self) -> str:
        return f"{self.source_name}-{self.run.environment}-{self.run.version}"

    @property
    def title(self) -> str:
        return f"Update badges: {self.run.environment} - {self.run.version}"

    @property
    def clone_url(self) -> str:
        """HTTPS remote URL with the token embedded as oauth2 credentials."""
        return (
            f"https://oauth2:{self.run.token}@{self.github.host}/"
            f"{self.target_owner}/{self.target_name}.git"
        )
