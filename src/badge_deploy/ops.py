import enum
import logging
import shutil
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path

from rich.console import Console

from .badge import BadgeStyle, extract_version, render_badge
from .config import Config
from .constants import APP_NAME
from .git_wrapper import GitRepo
from .github import GitHubAPIError, GitHubClient
from .retry import retry

console = Console(stderr=True)
logger = logging.getLogger(APP_NAME)


class PublishError(RuntimeError):
    """Raised when a step of the publish pipeline fails fatally."""


class PublishStatus(enum.Enum):
    UNCHANGED = "unchanged"
    MERGED = "merged"
    MERGE_FAILED = "merge_failed"


@dataclass
class PublishResult:
    """Outcome of a publish run.

    Attributes:
        status (PublishStatus): What happened.
        previous_version (str | None): Version found in the published badge, if any.
        pr_number (int | None): The pull request opened for the update.
        attempts (int | None): The merge attempt that succeeded.
    """

    status: PublishStatus
    previous_version: str | None = None
    pr_number: int | None = None
    attempts: int | None = None


def make_client(cfg: Config) -> GitHubClient:
    return GitHubClient(
        cfg.run.token, base_url=cfg.github.api_url, timeout=cfg.github.timeout
    )


def check_remote_version(client: GitHubClient, cfg: Config) -> str | None:
    """Reads the version embedded in the currently published badge.

    Args:
        client (GitHubClient): Authenticated API client.
        cfg (Config): The run configuration.

    Returns:
        str | None: The published version, or None if no badge (or no version) exists.
    """
    logger.info("Checking the version of the published badge...")
    try:
        content = client.get_file_text(
            cfg.target_owner, cfg.target_name, cfg.badge_path, cfg.run.branch
        )
    except GitHubAPIError as e:
        logger.error(f"Failed to fetch published badge: {e}")
        return None

    if content is None:
        logger.warning(f"No badge published at {cfg.badge_path} yet. It will be created.")
        return None

    version = extract_version(content)
    if version:
        logger.info(f"Published badge shows version {version}.")
    return version


def render_for(cfg: Config) -> str:
    return render_badge(
        cfg.run.environment,
        cfg.run.version,
        BadgeStyle(font_size=cfg.badge.font_size),
    )


def write_badge(repo_path: Path, cfg: Config) -> Path:
    """Writes the rendered badge into the working tree, creating parent directories."""
    target = repo_path / cfg.badge_path
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(render_for(cfg), encoding="utf-8")
    logger.info(f"Badge written to {cfg.badge_path}.")
    return target


def decorate_pull_request(client: GitHubClient, cfg: Config, number: int) -> None:
    """Attaches the label and milestone. Failures are logged, never raised."""
    owner, name = cfg.target_owner, cfg.target_name
    pr = cfg.pull_request

    try:
        client.add_labels(owner, name, number, [pr.label])
        logger.info(f"Label '{pr.label}' added to PR #{number}.")
    except GitHubAPIError as e:
        logger.warning(f"Failed to add label '{pr.label}': {e}")

    try:
        milestone = client.find_milestone(owner, name, pr.milestone)
        if milestone is None:
            logger.warning(f"Milestone '{pr.milestone}' not found.")
            return
        client.set_milestone(owner, name, number, milestone)
        logger.info(f"Milestone '{pr.milestone}' set on PR #{number}.")
    except GitHubAPIError as e:
        logger.warning(f"Failed to set milestone '{pr.milestone}': {e}")


def merge_until_done(
    repo: GitRepo, client: GitHubClient, cfg: Config, pr_branch: str, number: int
) -> int | None:
    """Rebases the PR branch onto its base and attempts an admin merge, repeatedly.

    Each attempt fetches the base branch, rebases the PR branch on top of it,
    force-pushes the result, then asks the API to merge while bypassing branch
    protection. Any exception counts as a failed attempt.

    Args:
        repo (GitRepo): The local clone, checked out on `pr_branch`.
        client (GitHubClient): Authenticated API client.
        cfg (Config): The run configuration.
        pr_branch (str): The pull request head branch.
        number (int): The pull request number.

    Returns:
        int | None: The successful attempt number, or None once the cap is reached.
    """
    base = cfg.run.branch
    max_attempts = cfg.pull_request.max_merge_attempts

    for attempt in range(1, max_attempts + 1):
        try:
            logger.info(f"Attempt {attempt}: rebasing {pr_branch} onto {base}...")
            repo.fetch("origin", base)
            try:
                repo.rebase(f"origin/{base}")
            except RuntimeError:
                repo.abort_rebase()
                raise
            repo.push("origin", pr_branch, force=True)

            logger.info(f"Attempt {attempt}: merging PR #{number}...")
            if client.merge_pull(
                cfg.target_owner,
                cfg.target_name,
                number,
                merge_method=cfg.pull_request.merge_method,
                bypass_rules=True,
            ):
                logger.info(f"PR #{number} merged on attempt {attempt}.")
                return attempt
            logger.info(f"Attempt {attempt}: PR #{number} was not merged.")
        except Exception as e:
            logger.error(f"Attempt {attempt}: merge failed: {e}")

        if attempt < max_attempts:
            time.sleep(cfg.pull_request.merge_delay)

    logger.error(f"Failed to merge PR #{number} after {max_attempts} attempts.")
    return None


def _publish_from_clone(
    clone_dir: Path, client: GitHubClient, cfg: Config, previous: str | None
) -> PublishResult:
    """Runs the clone-to-merge steps inside an existing temporary directory."""
    run, retries = cfg.run, cfg.retry
    repo_dir = clone_dir / cfg.target_name
    slug = f"{cfg.target_owner}/{cfg.target_name}"

    def fresh_clone() -> GitRepo:
        # A failed attempt can leave a partial checkout behind.
        if repo_dir.exists():
            shutil.rmtree(repo_dir)
        return GitRepo.clone(cfg.clone_url, repo_dir, branch=run.branch)

    # 1. Clone.
    with console.status(f"[bold blue]Cloning {slug}...[/bold blue]", spinner="dots"):
        try:
            repo = retry(
                fresh_clone,
                attempts=retries.clone_attempts,
                delay=retries.clone_delay,
                description=f"clone {slug}",
            )
        except Exception as e:
            raise PublishError(f"Failed to clone {slug}: {e}") from e
    logger.info(f"Cloned {slug} ({run.branch}) into {repo_dir}.")

    # 2. Commit the badge on a fresh branch.
    pr_branch = cfg.pr_branch
    try:
        repo.set_identity(cfg.pull_request.author_name, cfg.pull_request.author_email)
        badge_file = write_badge(repo_dir, cfg)
        repo.add(badge_file.relative_to(repo_dir))
        if not repo.status_porcelain():
            logger.info("Badge content is identical to the published file.")
            return PublishResult(PublishStatus.UNCHANGED, previous_version=previous)
        repo.commit(cfg.title)
        repo.create_branch(pr_branch)
    except (OSError, RuntimeError) as e:
        raise PublishError(f"Failed to commit badge: {e}") from e
    logger.info(f"Committed '{cfg.title}' on branch {pr_branch}.")

    # 3. Push.
    with console.status(
        f"[bold blue]Pushing {pr_branch}...[/bold blue]", spinner="dots"
    ):
        try:
            retry(
                lambda: repo.push("origin", pr_branch, force=True),
                attempts=retries.push_attempts,
                delay=retries.push_delay,
                description=f"push {pr_branch}",
            )
        except Exception as e:
            raise PublishError(f"Failed to push {pr_branch}: {e}") from e

    # 4. Pull request.
    body = (
        f"This pull request updates the badge for the {run.environment} "
        f"environment to version {run.version}."
    )
    try:
        pull = retry(
            lambda: client.create_pull(
                cfg.target_owner, cfg.target_name, cfg.title, pr_branch, run.branch, body
            ),
            attempts=retries.pull_request_attempts,
            delay=retries.pull_request_delay,
            description="create pull request",
        )
    except Exception as e:
        raise PublishError(f"Failed to create pull request: {e}") from e
    number = int(pull["number"])
    logger.info(f"Opened PR #{number}: {pull.get('html_url', '')}")

    decorate_pull_request(client, cfg, number)

    # 5. Merge, then drop the remote branch.
    with console.status(
        f"[bold blue]Merging PR #{number}...[/bold blue]", spinner="dots"
    ):
        attempt = merge_until_done(repo, client, cfg, pr_branch, number)

    if attempt is None:
        return PublishResult(
            PublishStatus.MERGE_FAILED, previous_version=previous, pr_number=number
        )

    try:
        if client.delete_branch(cfg.target_owner, cfg.target_name, pr_branch):
            logger.info(f"Deleted branch {pr_branch}.")
    except GitHubAPIError as e:
        logger.warning(f"Failed to delete branch {pr_branch}: {e}")

    return PublishResult(
        PublishStatus.MERGED,
        previous_version=previous,
        pr_number=number,
        attempts=attempt,
    )


def publish_badge(cfg: Config, client: GitHubClient | None = None) -> PublishResult:
    """Publishes the badge for `cfg.run.environment` / `cfg.run.version`.

    Steps:
    1. Reads the published badge; stops if it already shows this version.
    2. Clones the target repository into a temporary directory.
    3. Commits the rendered badge on a dedicated branch and pushes it.
    4. Opens a labelled pull request and merges it, bypassing protection.
    5. Deletes the remote branch after a successful merge.

    The temporary clone is removed whatever the outcome.

    Args:
        cfg (Config): A validated configuration.
        client (GitHubClient | None, optional): API client. Built from `cfg` if omitted.

    Returns:
        PublishResult: The outcome of the run.

    Raises:
        PublishError: If cloning, committing, pushing, or opening the PR fails.
    """
    client = client or make_client(cfg)
    run = cfg.run

    previous = check_remote_version(client, cfg)
    if previous == run.version:
        logger.info(f"Version {run.version} is already published. Nothing to do.")
        return PublishResult(PublishStatus.UNCHANGED, previous_version=previous)

    logger.info(
        f"Updating badge from {previous or 'none'} to {run.version} "
        f"({run.environment}, {cfg.target_owner}/{cfg.target_name}@{run.branch})."
    )

    clone_dir = Path(tempfile.mkdtemp(prefix=f"{APP_NAME}-"))
    try:
        return _publish_from_clone(clone_dir, client, cfg, previous)
    finally:
        logger.info("Removing local clone...")
        try:
            shutil.rmtree(clone_dir)
        except OSError as e:
            logger.error(f"Failed to remove local clone {clone_dir}: {e}")
