import pytest

from jira_worklog_fetcher import core as mod
from tests.conftest import BASE_URL, FakeResponse, FakeSession


def test_find_issues_posts_query_and_keeps_server_order():
    sess = FakeSession(post_response=FakeResponse(200, {"issues": [{"key": "B-2"}, {"key": "A-1"}, {"key": "C-3"}]}))
    keys = mod.find_issues(sess, BASE_URL, "project = ABC")
    assert keys == ["B-2", "A-1", "C-3"]

    method, url, body = sess.calls[0]
    assert method == "POST"
    assert url == f"{BASE_URL}/rest/api/2/search"
    assert body == {"jql": "project = ABC", "fields": ["key"], "maxResults": 200}
    assert len(sess.calls) == 1


def test_find_issues_forwards_result_cap_without_paginating():
    sess = FakeSession(post_response=FakeResponse(200, {"issues": [{"key": "A-1"}], "total": 500}))
    keys = mod.find_issues(sess, BASE_URL, "project = ABC", max_results=1)
    assert keys == ["A-1"]
    assert sess.calls[0][2]["maxResults"] == 1
    assert len(sess.calls) == 1


def test_find_issues_non_success_reports_and_returns_empty(capsys):
    sess = FakeSession(post_response=FakeResponse(400, None, text="bad jql"))
    assert mod.find_issues(sess, BASE_URL, "bad") == []
    err = capsys.readouterr().err
    assert "Error in finding issues: 400" in err
    assert "bad jql" in err


def test_find_issues_empty_result():
    sess = FakeSession(post_response=FakeResponse(200, {"issues": []}))
    assert mod.find_issues(sess, BASE_URL, "project = NONE") == []


@pytest.mark.parametrize(
    "body,exc",
    [
        ({"errorMessages": []}, KeyError),
        ({"issues": [{"id": "1"}]}, KeyError),
        ({"issues": None}, TypeError),
        (ValueError("Expecting value"), ValueError),
    ],
)
def test_find_issues_malformed_body_raises(body, exc):
    sess = FakeSession(post_response=FakeResponse(200, body))
    with pytest.raises(exc):
        mod.find_issues(sess, BASE_URL, "project = ABC")
