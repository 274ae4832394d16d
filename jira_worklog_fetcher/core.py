"""
jira-worklog-fetcher core

- Finds issues with a JQL query (single search page, capped by max_results).
- For each issue, fetches the assignee and the worklog list and merges them
  into WorklogRecord rows (hours and minutes rounded independently).
- Exports everything to a timestamp-named file, optionally with the Register
  Date column converted to the Persian calendar.

Configuration comes from an INI file ([jira] section), overlaid by an optional
"<name>.local.ini" next to it, with environment variable fallbacks and CLI
overrides on top.
"""

import configparser
import os
import re
import sys
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

import requests
from tqdm import tqdm

from .export import OUTPUT_FORMATS, export_records
from .models import UNASSIGNED, WorklogRecord

SEARCH_PATH = "/rest/api/2/search"
ISSUE_PATH = "/rest/api/2/issue/{key}"
WORKLOG_PATH = "/rest/api/2/issue/{key}/worklog"

DEFAULT_MAX_RESULTS = 200
DEFAULT_TIMEOUT = 120

# yyyy-MM-ddTHH:mm:ss.fff followed by a numeric offset (+03:30 or +0330)
STARTED_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}[+-]\d{2}:?\d{2}$")
STARTED_FORMAT = "%Y-%m-%dT%H:%M:%S.%f%z"

ProgressCallback = Callable[[int, int, str], None]


class DiscoveryError(RuntimeError):
    """The issue search could not be completed or returned an unusable body."""


@dataclass(frozen=True)
class Config:
    base_url: str
    username: str
    api_token: str
    jql: str
    verify_ssl: bool = True
    ca_bundle: str = ""
    http_proxy: str = ""
    https_proxy: str = ""
    max_results: int = DEFAULT_MAX_RESULTS
    max_workers: int = 1
    timeout: int = DEFAULT_TIMEOUT
    convert_dates: bool = True
    output_format: str = "csv"
    include_details: bool = False
    out_dir: str = "."


def vprint(verbose: bool, *args, **kwargs):
    """Print arguments only when verbose is True."""
    if verbose:
        print(*args, **kwargs)


def local_overlay_path(path: str) -> str:
    """config.ini -> config.local.ini"""
    root, ext = os.path.splitext(path)
    return f"{root}.local{ext or '.ini'}"


def _as_bool(raw: str, default: bool) -> bool:
    raw = (raw or "").strip().lower()
    if not raw:
        return default
    if raw in ("1", "true", "yes", "on"):
        return True
    if raw in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"not a boolean: {raw!r}")


def _as_int(raw: str, default: int, minimum: int = 1) -> int:
    raw = (raw or "").strip()
    if not raw:
        return default
    value = int(raw)
    if value < minimum:
        raise ValueError(f"must be >= {minimum}: {value}")
    return value


def read_config(path: str) -> Config:
    """Read and validate configuration from an INI file and its local overlay.

    Required values (base_url, username, api_token, jql) fall back to the
    JIRA_BASE_URL, JIRA_USERNAME, JIRA_API_TOKEN and JIRA_JQL environment
    variables. Exits with status 2 when a required value is missing or a value
    cannot be parsed.
    """
    cp = configparser.ConfigParser(interpolation=None)
    cp.read([path, local_overlay_path(path)], encoding="utf-8")
    sec: Any = cp["jira"] if cp.has_section("jira") else {}

    base_url = (sec.get("base_url", "").strip() or os.environ.get("JIRA_BASE_URL", "")).strip().rstrip("/")
    username = (sec.get("username", "").strip() or os.environ.get("JIRA_USERNAME", "")).strip()
    token    = (sec.get("api_token", "").strip() or os.environ.get("JIRA_API_TOKEN", "")).strip()
    jql      = (sec.get("jql", "").strip() or os.environ.get("JIRA_JQL", "")).strip()
    if not (base_url and username and token and jql):
        print(f"ERROR: base_url, username, api_token and jql are required ([jira] in {path} or environment variables).",
              file=sys.stderr)
        sys.exit(2)

    output_format = sec.get("output_format", "").strip() or "csv"
    if output_format not in OUTPUT_FORMATS:
        print(f"ERROR: output_format must be one of {', '.join(OUTPUT_FORMATS)} (got {output_format!r}).", file=sys.stderr)
        sys.exit(2)

    try:
        return Config(
            base_url=base_url,
            username=username,
            api_token=token,
            jql=jql,
            verify_ssl=_as_bool(sec.get("verify_ssl", ""), True),
            ca_bundle=sec.get("ca_bundle", "").strip(),
            http_proxy=sec.get("http_proxy", "").strip(),
            https_proxy=sec.get("https_proxy", "").strip(),
            max_results=_as_int(sec.get("max_results", ""), DEFAULT_MAX_RESULTS),
            max_workers=_as_int(sec.get("max_workers", ""), 1),
            timeout=_as_int(sec.get("timeout", ""), DEFAULT_TIMEOUT),
            convert_dates=_as_bool(sec.get("convert_dates", ""), True),
            output_format=output_format,
            include_details=_as_bool(sec.get("include_details", ""), False),
            out_dir=sec.get("out_dir", "").strip() or ".",
        )
    except ValueError as e:
        print(f"ERROR: invalid value in {path}: {e}", file=sys.stderr)
        sys.exit(2)


def make_session(username: str, token: str, verify: Optional[bool] = True, ca_bundle: Optional[str] = "",
                 http_proxy: str = "", https_proxy: str = "") -> requests.Session:
    """Create a requests.Session with basic auth, JSON headers, proxies and TLS settings.

    When ca_bundle is given it replaces the boolean verify flag.
    """
    s = requests.Session()
    s.auth = (username, token)
    s.headers.update({"Accept": "application/json", "Content-Type": "application/json"})
    proxies = {}
    if http_proxy:
        proxies["http"] = http_proxy
    if https_proxy:
        proxies["https"] = https_proxy
    if proxies:
        s.proxies.update(proxies)
    s.verify = ca_bundle if ca_bundle else verify
    return s


def session_factory_for(cfg: Config) -> Callable[[], requests.Session]:
    def factory() -> requests.Session:
        return make_session(cfg.username, cfg.api_token, verify=cfg.verify_ssl, ca_bundle=cfg.ca_bundle,
                            http_proxy=cfg.http_proxy, https_proxy=cfg.https_proxy)
    return factory


def adf_to_text(node: Any) -> str:
    """Flatten a worklog comment (plain string or Atlassian Document Format) to text.

    Block nodes (paragraphs, headings, list items) become separate lines and
    hardBreak nodes become newlines.
    """
    if node is None:
        return ""
    if isinstance(node, str):
        return node
    if not isinstance(node, dict):
        return ""

    lines: List[str] = []

    def inline(children: List[Any]) -> str:
        parts = []
        for c in children:
            if not isinstance(c, dict):
                continue
            if c.get("type") == "hardBreak":
                parts.append("\n")
            elif isinstance(c.get("text"), str):
                parts.append(c["text"])
        return "".join(parts)

    def walk(n: Any, bullet: str = ""):
        if not isinstance(n, dict):
            return
        t = n.get("type")
        children = n.get("content") or []
        if t in ("paragraph", "heading"):
            lines.append(bullet + inline(children))
        elif t == "listItem":
            for c in children:
                walk(c, "- ")
        else:
            for c in children:
                walk(c, bullet)

    walk(node)
    return "\n".join(line.rstrip() for line in lines).strip()


def parse_started(raw: Any) -> datetime:
    """Parse a worklog 'started' timestamp; the offset is kept, not converted."""
    if not isinstance(raw, str) or not STARTED_RE.match(raw):
        raise ValueError(f"unexpected worklog timestamp {raw!r}")
    return datetime.strptime(raw, STARTED_FORMAT)


def find_issues(session: requests.Session, base_url: str, jql: str, max_results: int = DEFAULT_MAX_RESULTS,
                timeout: int = DEFAULT_TIMEOUT) -> List[str]:
    """Return the keys of issues matching jql, in server order.

    A single search page is requested; matches beyond max_results are dropped.
    A non-success status is reported on stderr and yields an empty list. A body
    without the expected issues/key fields raises KeyError/TypeError/ValueError.
    """
    url = f"{base_url}{SEARCH_PATH}"
    body = {"jql": jql, "fields": ["key"], "maxResults": max_results}
    r = session.post(url, json=body, timeout=timeout)
    if r.status_code >= 400:
        print(f"Error in finding issues: {r.status_code}\n{getattr(r, 'text', '')}", file=sys.stderr)
        return []
    data = r.json()
    return [issue["key"] for issue in data["issues"]]


def merge_worklogs(issue_key: str, issue_data: Dict[str, Any], worklog_data: Dict[str, Any],
                   include_details: bool = False) -> List[WorklogRecord]:
    """Combine an issue body (assignee) and its worklog body into records.

    Raises KeyError/TypeError/ValueError on a malformed body or on a 'started'
    value that is not in the expected timestamp shape; in that case no records
    are produced for the issue.
    """
    fields = issue_data["fields"]
    if not isinstance(fields, dict):
        raise TypeError(f"issue fields is not an object: {fields!r}")
    assignee = UNASSIGNED
    if fields.get("assignee") is not None:
        assignee = fields["assignee"]["displayName"] or UNASSIGNED
    summary = (fields.get("summary") or "") if include_details else ""

    records: List[WorklogRecord] = []
    for wl in worklog_data["worklogs"]:
        if not isinstance(wl, dict):
            raise TypeError(f"worklog entry is not an object: {wl!r}")
        author = wl["author"]["displayName"] or ""
        seconds = wl["timeSpentSeconds"]
        if isinstance(seconds, bool) or not isinstance(seconds, int):
            raise TypeError(f"timeSpentSeconds is not an integer: {seconds!r}")
        started = parse_started(wl["started"])
        records.append(WorklogRecord.from_seconds(
            date=started.date().isoformat(),
            issue_key=issue_key,
            author=author,
            seconds=seconds,
            assignee=assignee,
            issue_summary=summary,
            comment=adf_to_text(wl.get("comment")) if include_details else "",
        ))
    return records


def fetch_worklogs_for_issue(session: requests.Session, base_url: str, issue_key: str,
                             timeout: int = DEFAULT_TIMEOUT, include_details: bool = False) -> List[WorklogRecord]:
    """Fetch assignee and worklogs for one issue and merge them.

    Both requests must succeed. Any failure is reported on stderr with the
    issue key and yields an empty list, so one bad issue never stops the run.
    """
    fields = "assignee,summary" if include_details else "assignee"
    try:
        ri = session.get(base_url + ISSUE_PATH.format(key=issue_key), params={"fields": fields}, timeout=timeout)
        rw = session.get(base_url + WORKLOG_PATH.format(key=issue_key), timeout=timeout)
        if ri.status_code >= 400 or rw.status_code >= 400:
            sys.stderr.write(f"Error in finding worklogs of issue {issue_key} "
                             f"(issue: {ri.status_code}, worklog: {rw.status_code})\n")
            return []
        return merge_worklogs(issue_key, ri.json(), rw.json(), include_details=include_details)
    except (requests.RequestException, AttributeError, KeyError, TypeError, ValueError) as e:
        sys.stderr.write(f"Error processing worklogs for issue {issue_key}: {e}\n")
        return []


class ConsoleProgress:
    """tqdm progress bar driven by (current, total, issue_key) callbacks."""

    def __init__(self, total: int):
        self._bar = tqdm(total=total, desc="Gathering worklogs", unit="issue")

    def __call__(self, current: int, total: int, issue_key: str) -> None:
        self._bar.set_postfix_str(issue_key)
        self._bar.update(current - self._bar.n)

    def close(self) -> None:
        self._bar.close()


def gather_worklogs(cfg: Config, issue_keys: List[str], session_factory: Callable[[], Any],
                    progress: ProgressCallback) -> List[WorklogRecord]:
    """Fetch worklogs for every issue key; records keep discovery order.

    With max_workers > 1 issues are fetched on a thread pool, one session per
    task, and progress is reported in completion order.
    """
    total = len(issue_keys)
    records: List[WorklogRecord] = []

    if cfg.max_workers <= 1:
        with session_factory() as session:
            for current, key in enumerate(issue_keys, start=1):
                records.extend(fetch_worklogs_for_issue(session, cfg.base_url, key, cfg.timeout, cfg.include_details))
                progress(current, total, key)
        return records

    def task(key: str) -> List[WorklogRecord]:
        with session_factory() as session:
            return fetch_worklogs_for_issue(session, cfg.base_url, key, cfg.timeout, cfg.include_details)

    results: Dict[int, List[WorklogRecord]] = {}
    with ThreadPoolExecutor(max_workers=cfg.max_workers) as executor:
        futures = {executor.submit(task, key): idx for idx, key in enumerate(issue_keys)}
        for current, fut in enumerate(as_completed(futures), start=1):
            idx = futures[fut]
            results[idx] = fut.result()
            progress(current, total, issue_keys[idx])
    for idx in range(total):
        records.extend(results[idx])
    return records


def run_pipeline(cfg: Config, session_factory: Optional[Callable[[], Any]] = None,
                 progress: Optional[ProgressCallback] = None, verbose: bool = False) -> Optional[str]:
    """Search issues, gather their worklogs and export them.

    Returns:
        Optional[str]: Path of the exported file, or None when the search
        matched nothing (no file is written).

    Raises:
        DiscoveryError: The search request failed or returned an unusable body.
        ExportError: The export file could not be written.
    """
    if session_factory is None:
        session_factory = session_factory_for(cfg)

    started = time.perf_counter()
    print("\nFinding items from Jira server...\n")
    vprint(verbose, "JQL:", cfg.jql)

    try:
        with session_factory() as session:
            issue_keys = find_issues(session, cfg.base_url, cfg.jql, cfg.max_results, cfg.timeout)
    except (requests.RequestException, KeyError, TypeError, ValueError) as e:
        print(f"ERROR: issue search failed: {e}", file=sys.stderr)
        raise DiscoveryError(str(e)) from e

    if not issue_keys:
        print("\nNothing Found! Check JQL or configs of your Jira!")
        return None
    print(f"{len(issue_keys)} items found!")

    console = None
    if progress is None:
        console = progress = ConsoleProgress(len(issue_keys))
    try:
        records = gather_worklogs(cfg, issue_keys, session_factory, progress)
    finally:
        if console is not None:
            console.close()

    elapsed = time.perf_counter() - started
    print(f"\nWorklogs gathering finished in {elapsed:.3f} seconds.")
    vprint(verbose, f"Worklogs collected: {len(records)}")

    path = export_records(records, convert_dates=cfg.convert_dates, output_format=cfg.output_format,
                          out_dir=cfg.out_dir)
    print(f"Finished successfully! Result is in: {path}")
    return path
