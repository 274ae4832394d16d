import os
import sys
# Ensure project root is importable for tests, regardless of runner CWD
ROOT_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

from typing import Any, Dict, List, Optional

import pytest

BASE_URL = "https://example.atlassian.net"


class FakeResponse:
    def __init__(
        self,
        status_code: int = 200,
        json_data: Optional[Any] = None,
        text: str = "",
        headers: Optional[Dict[str, str]] = None,
    ):
        self.status_code = status_code
        self._json_data = json_data
        self.text = text
        self.headers = headers or {}

    def json(self):
        if isinstance(self._json_data, Exception):
            raise self._json_data
        return self._json_data


class FakeSession:
    """Answers GETs by URL suffix and POSTs with a single canned response.

    A route value may be a FakeResponse or an exception instance to raise.
    Unknown URLs answer 404.
    """

    def __init__(self, get_routes: Optional[Dict[str, Any]] = None, post_response: Any = None):
        self.get_routes = get_routes or {}
        self.post_response = post_response
        self.calls: List[tuple] = []
        self.closed = False

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.closed = True
        return False

    def _answer(self, resp):
        if isinstance(resp, Exception):
            raise resp
        return resp

    def get(self, url, params=None, timeout=None):
        self.calls.append(("GET", url, params))
        for suffix, resp in self.get_routes.items():
            if url.endswith(suffix):
                return self._answer(resp)
        return FakeResponse(status_code=404, text="not found")

    def post(self, url, json=None, timeout=None):
        self.calls.append(("POST", url, json))
        return self._answer(self.post_response)


def issue_body(assignee: Optional[str] = "Bob", summary: str = "") -> Dict[str, Any]:
    fields: Dict[str, Any] = {"assignee": {"displayName": assignee} if assignee else None}
    if summary:
        fields["summary"] = summary
    return {"key": "ignored", "fields": fields}


def worklog(author: str = "Alice", seconds: int = 3661,
            started: str = "2024-03-05T10:15:30.000+00:00", comment: Any = None) -> Dict[str, Any]:
    wl: Dict[str, Any] = {"author": {"displayName": author}, "timeSpentSeconds": seconds, "started": started}
    if comment is not None:
        wl["comment"] = comment
    return wl


def issue_routes(key: str, worklogs: List[Dict[str, Any]], assignee: Optional[str] = "Bob",
                 issue_status: int = 200, worklog_status: int = 200) -> Dict[str, FakeResponse]:
    return {
        f"/rest/api/2/issue/{key}": FakeResponse(issue_status, issue_body(assignee)),
        f"/rest/api/2/issue/{key}/worklog": FakeResponse(worklog_status, {"worklogs": worklogs}),
    }


@pytest.fixture
def tmp_config_file(tmp_path):
    """Create a minimal valid config.ini and return its path."""
    p = tmp_path / "config.ini"
    p.write_text(
        "[jira]\n"
        f"base_url = {BASE_URL}/\n"
        "username = user@example.com\n"
        "api_token = token123\n"
        "jql = project = ABC\n"
        "verify_ssl = true\n",
        encoding="utf-8",
    )
    return p


@pytest.fixture
def clean_env(monkeypatch):
    for name in ("JIRA_BASE_URL", "JIRA_USERNAME", "JIRA_API_TOKEN", "JIRA_JQL"):
        monkeypatch.delenv(name, raising=False)
    yield


# Expose utilities for tests
__all__ = ["BASE_URL", "FakeResponse", "FakeSession", "issue_body", "issue_routes", "worklog"]
