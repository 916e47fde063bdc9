import base64
import binascii
import logging
from typing import Any

import requests

from .constants import APP_NAME, GITHUB_API_URL, HTTP_TIMEOUT

logger = logging.getLogger(APP_NAME)


class GitHubAPIError(RuntimeError):
    """Raised when the GitHub REST API answers with a non-success status.

    Attributes:
        status (int): The HTTP status code (0 for transport failures).
        message (str): The API error message, or the reason phrase.
    """

    def __init__(self, status: int, message: str):
        super().__init__(f"GitHub API error {status}: {message}")
        self.status = status
        self.message = message


class GitHubClient:
    """A thin wrapper around the subset of the GitHub REST v3 API used to publish badges.

    Attributes:
        base_url (str): The API root (override for GitHub Enterprise).
        timeout (float): Per-request timeout in seconds.
        session (requests.Session): The authenticated HTTP session.
    """

    def __init__(
        self,
        token: str,
        base_url: str = GITHUB_API_URL,
        timeout: float = HTTP_TIMEOUT,
        session: requests.Session | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "Accept": "application/vnd.github+json",
                "Authorization": f"Bearer {token}",
                "X-GitHub-Api-Version": "2022-11-28",
                "User-Agent": APP_NAME,
            }
        )

    def _request(
        self, method: str, path: str, ok: tuple[int, ...] = (200, 201), **kwargs: Any
    ) -> requests.Response:
        """Sends a request and raises GitHubAPIError unless the status is in `ok`.

        Args:
            method (str): The HTTP verb.
            path (str): The endpoint path, relative to `base_url`.
            ok (tuple[int, ...], optional): Accepted status codes.
            **kwargs: Forwarded to `requests.Session.request` (json, params).

        Returns:
            requests.Response: The accepted response.

        Raises:
            GitHubAPIError: On transport failure or an unexpected status code.
        """
        url = f"{self.base_url}/{path.lstrip('/')}"
        logger.debug(f"{method} {url}")
        try:
            resp = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise GitHubAPIError(0, str(e)) from e

        if resp.status_code not in ok:
            raise GitHubAPIError(resp.status_code, self._error_message(resp))
        return resp

    @staticmethod
    def _error_message(resp: requests.Response) -> str:
        try:
            payload = resp.json()
        except ValueError:
            return resp.reason or resp.text[:200]
        if isinstance(payload, dict) and payload.get("message"):
            return str(payload["message"])
        return resp.reason or ""

    def get_file_text(self, owner: str, repo: str, path: str, ref: str) -> str | None:
        """Fetches a UTF-8 file through the Contents API.

        Args:
            owner (str): Repository owner.
            repo (str): Repository name.
            path (str): File path inside the repository.
            ref (str): Branch, tag, or commit to read from.

        Returns:
            str | None: The decoded file text, or None if the file does not exist.

        Raises:
            GitHubAPIError: On any failure other than 404, or on undecodable content.
        """
        try:
            resp = self._request(
                "GET", f"repos/{owner}/{repo}/contents/{path}", params={"ref": ref}
            )
        except GitHubAPIError as e:
            if e.status == 404:
                return None
            raise

        data = resp.json()
        content = data.get("content") if isinstance(data, dict) else None
        if not content:
            return None

        try:
            return base64.b64decode(content).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as e:
            raise GitHubAPIError(resp.status_code, f"Undecodable content: {e}") from e

    def create_pull(
        self, owner: str, repo: str, title: str, head: str, base: str, body: str
    ) -> dict[str, Any]:
        """Opens a pull request and returns its JSON representation."""
        resp = self._request(
            "POST",
            f"repos/{owner}/{repo}/pulls",
            json={"title": title, "head": head, "base": base, "body": body},
        )
        return resp.json()

    def add_labels(self, owner: str, repo: str, number: int, labels: list[str]) -> None:
        self._request(
            "POST",
            f"repos/{owner}/{repo}/issues/{number}/labels",
            json={"labels": labels},
        )

    def find_milestone(self, owner: str, repo: str, title: str) -> int | None:
        """Looks up an open milestone by title.

        Returns:
            int | None: The milestone number, or None if no milestone matches.
        """
        resp = self._request(
            "GET",
            f"repos/{owner}/{repo}/milestones",
            params={"state": "open", "per_page": 100},
        )
        for milestone in resp.json():
            if milestone.get("title") == title:
                return milestone["number"]
        return None

    def set_milestone(self, owner: str, repo: str, number: int, milestone: int) -> None:
        self._request(
            "PATCH",
            f"repos/{owner}/{repo}/issues/{number}",
            json={"milestone": milestone},
        )

    def merge_pull(
        self,
        owner: str,
        repo: str,
        number: int,
        merge_method: str = "merge",
        bypass_rules: bool = True,
    ) -> bool:
        """Attempts to merge a pull request, bypassing branch protection rules.

        Args:
            owner (str): Repository owner.
            repo (str): Repository name.
            number (int): Pull request number.
            merge_method (str, optional): 'merge', 'squash', or 'rebase'.
            bypass_rules (bool, optional): Request an administrative merge.

        Returns:
            bool:   True if the API reports the pull request as merged,
                    False if it is not mergeable yet (HTTP 405/409).

        Raises:
            GitHubAPIError: On any other failure.
        """
        try:
            resp = self._request(
                "PUT",
                f"repos/{owner}/{repo}/pulls/{number}/merge",
                json={"merge_method": merge_method, "bypass_rules": bypass_rules},
            )
        except GitHubAPIError as e:
            if e.status in (405, 409):
                logger.info(f"PR #{number} not mergeable yet: {e.message}")
                return False
            raise

        return bool(resp.json().get("merged", False))

    def delete_branch(self, owner: str, repo: str, branch: str) -> bool:
        """Deletes a branch ref.

        Returns:
            bool: True if the API answered 204 No Content.
        """
        resp = self._request(
            "DELETE",
            f"repos/{owner}/{repo}/git/refs/heads/{branch}",
            ok=(200, 204),
        )
        if resp.status_code != 204:
            logger.warning(
                f"Deleting branch {branch} returned unexpected status {resp.status_code}."
            )
        return resp.status_code == 204
