"""GitHub REST/GraphQL client for issues, gists and project boards."""

import logging
import time
from typing import Any

import requests
from cachetools import TTLCache

from models.feedback import CreatedIssue, GistUpload, IssueDraft

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"
API_VERSION = "2022-11-28"
REQUEST_TIMEOUT_SECONDS = 30

# Retry configuration for API calls
MAX_RETRIES = 3
RETRY_DELAYS = [1, 2, 4]  # Exponential backoff: 1s, 2s, 4s
RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}

# Project membership rarely changes within a run
PROJECT_MEMBERSHIP_TTL_SECONDS = 600

ADD_PROJECT_ITEM_MUTATION = """
mutation($projectId: ID!, $contentId: ID!) {
  addProjectV2ItemById(input: {projectId: $projectId, contentId: $contentId}) {
    item { id }
  }
}
"""

PROJECT_ITEMS_QUERY = """
query($contentId: ID!) {
  node(id: $contentId) {
    ... on Issue {
      projectItems(first: 50) {
        nodes { id project { id } }
      }
    }
  }
}
"""


class GitHubError(Exception):
    """A GitHub API call failed."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


def _is_retryable_error(exception: Exception, idempotent: bool = True) -> bool:
    """Check if an exception is retryable.

    Non-idempotent requests are only retried when the server cannot have
    acted on them: a connect timeout or a 429 rate-limit response.
    """
    if isinstance(exception, requests.exceptions.ConnectTimeout):
        return True
    if isinstance(exception, requests.exceptions.HTTPError):
        response = exception.response
        if response is None:
            return False
        if response.status_code == 429:
            return True
        return idempotent and response.status_code in RETRYABLE_STATUS_CODES
    if isinstance(exception, requests.exceptions.Timeout):
        return idempotent
    if isinstance(exception, requests.exceptions.ConnectionError):
        return idempotent
    return False


def _request_with_retry(
    session: requests.Session,
    method: str,
    url: str,
    sleep=time.sleep,
    idempotent: bool = True,
    **kwargs,
) -> requests.Response:
    """Make an HTTP request with retry logic and exponential backoff.

    Raises:
        requests.exceptions.RequestException: If all retries fail or the
            error is not retryable
    """
    last_exception = None

    for attempt in range(MAX_RETRIES):
        try:
            response = session.request(method, url, **kwargs)
            response.raise_for_status()
            return response
        except requests.exceptions.RequestException as e:
            last_exception = e
            if not _is_retryable_error(e, idempotent) or attempt == MAX_RETRIES - 1:
                raise

            delay = RETRY_DELAYS[attempt]
            logger.warning(
                f"Request to {url} failed (attempt {attempt + 1}/{MAX_RETRIES}): {e}. "
                f"Retrying in {delay}s..."
            )
            sleep(delay)

    raise last_exception


def _error_detail(exception: requests.exceptions.RequestException) -> str:
    response = getattr(exception, "response", None)
    if response is None:
        return str(exception)
    try:
        payload = response.json()
        message = payload.get("message") if isinstance(payload, dict) else None
    except ValueError:
        message = None
    return f"{response.status_code} {message or response.text[:200]}".strip()


class GitHubService:
    """Creates issues and gists in one repository."""

    def __init__(
        self,
        token: str,
        owner: str,
        repo: str,
        api_url: str = GITHUB_API_URL,
        session: requests.Session | None = None,
        sleep=time.sleep,
    ):
        """Initialize the client.

        Args:
            token: Token with issues (and gist, for screenshots) scope
            owner: Repository owner
            repo: Repository name
            api_url: API base URL, for GitHub Enterprise
            session: Optional pre-built requests session
            sleep: Backoff sleep function, replaceable in tests
        """
        self.owner = owner
        self.repo = repo
        self.api_url = api_url.rstrip("/")
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": API_VERSION,
                "User-Agent": "feedback-sync",
            }
        )
        self._sleep = sleep
        self._project_membership: TTLCache = TTLCache(
            maxsize=1024, ttl=PROJECT_MEMBERSHIP_TTL_SECONDS
        )

    def _call(
        self,
        method: str,
        path: str,
        payload: dict[str, Any],
        idempotent: bool = True,
    ) -> dict[str, Any]:
        url = f"{self.api_url}{path}"
        try:
            response = _request_with_retry(
                self.session,
                method,
                url,
                sleep=self._sleep,
                idempotent=idempotent,
                json=payload,
                timeout=REQUEST_TIMEOUT_SECONDS,
            )
        except requests.exceptions.RequestException as e:
            status = getattr(getattr(e, "response", None), "status_code", None)
            raise GitHubError(
                f"GitHub {method} {path} failed: {_error_detail(e)}", status
            ) from e

        try:
            return response.json()
        except ValueError as e:
            raise GitHubError(f"GitHub {method} {path} returned invalid JSON") from e

    def _graphql(
        self, query: str, variables: dict[str, Any], idempotent: bool = True
    ) -> dict[str, Any]:
        data = self._call(
            "POST",
            "/graphql",
            {"query": query, "variables": variables},
            idempotent=idempotent,
        )
        if data.get("errors"):
            messages = "; ".join(err.get("message", "") for err in data["errors"])
            raise GitHubError(f"GraphQL error: {messages}")
        return data.get("data") or {}

    def create_issue(self, draft: IssueDraft) -> CreatedIssue:
        """Create an issue and return its number, URL and node ID."""
        data = self._call(
            "POST",
            f"/repos/{self.owner}/{self.repo}/issues",
            {"title": draft.title, "body": draft.body, "labels": draft.labels},
            idempotent=False,
        )
        issue = CreatedIssue(
            number=data["number"], url=data["html_url"], node_id=data.get("node_id")
        )
        logger.info(f"Created issue #{issue.number}: {issue.url}")
        return issue

    def create_gist(
        self,
        filename: str,
        content: str,
        description: str = "",
        public: bool = False,
    ) -> GistUpload:
        """Upload a single-file gist and return its page and raw URLs."""
        data = self._call(
            "POST",
            "/gists",
            {
                "description": description,
                "public": public,
                "files": {filename: {"content": content}},
            },
            idempotent=False,
        )
        files = data.get("files") or {}
        file_info = files.get(filename) or next(iter(files.values()), {})
        raw_url = file_info.get("raw_url")
        if not raw_url:
            raise GitHubError(f"Gist {data.get('id')} has no raw URL for {filename}")

        gist = GistUpload(id=data["id"], url=data["html_url"], raw_url=raw_url)
        logger.info(f"Uploaded gist {gist.id}: {gist.url}")
        return gist

    def is_project_member(self, project_id: str, content_node_id: str) -> bool:
        """Check whether an issue is already on a Projects (v2) board."""
        cache_key = (project_id, content_node_id)
        if cache_key in self._project_membership:
            return self._project_membership[cache_key]

        data = self._graphql(PROJECT_ITEMS_QUERY, {"contentId": content_node_id})
        node = data.get("node") or {}
        items = (node.get("projectItems") or {}).get("nodes") or []
        member = any((item.get("project") or {}).get("id") == project_id for item in items)
        self._project_membership[cache_key] = member
        return member

    def add_to_project(self, project_id: str, content_node_id: str) -> str | None:
        """Add an issue to a Projects (v2) board.

        Returns:
            The project item ID, or None if the issue was already on the board
        """
        if self.is_project_member(project_id, content_node_id):
            logger.info(f"{content_node_id} is already on project {project_id}")
            return None

        data = self._graphql(
            ADD_PROJECT_ITEM_MUTATION,
            {"projectId": project_id, "contentId": content_node_id},
            idempotent=False,
        )
        item = (data.get("addProjectV2ItemById") or {}).get("item") or {}
        self._project_membership[(project_id, content_node_id)] = True
        return item.get("id")
