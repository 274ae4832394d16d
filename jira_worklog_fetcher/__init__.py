"""
jira_worklog_fetcher package

Fetches Jira worklogs for the issues matched by a JQL query and exports them
to a timestamp-named CSV or Excel file.
"""

from .core import (  # noqa: F401
    Config,
    ConsoleProgress,
    DiscoveryError,
    fetch_worklogs_for_issue,
    find_issues,
    make_session,
    merge_worklogs,
    read_config,
    run_pipeline,
)
from .export import ExportError, convert_date, export_records  # noqa: F401
from .models import UNASSIGNED, WorklogRecord  # noqa: F401


def main() -> None:
    """Package entrypoint. Delegates to cli.main()."""
    from .cli import main as _main
    _main()
