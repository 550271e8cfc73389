"""Validation and decoding of the auto-generated issue-report link."""
from __future__ import annotations

from typing import List
from urllib.parse import parse_qs, urlparse

from .config import DEFAULT_ISSUE_TRACKER_HOST, DEFAULT_ISSUE_TRACKER_PATH
from .errors import IssueReportError
from .models import IssueReport


def parse_issue_report(
    url: str,
    *,
    host: str = DEFAULT_ISSUE_TRACKER_HOST,
    path: str = DEFAULT_ISSUE_TRACKER_PATH,
) -> IssueReport:
    """Check ``url`` against the issue tracker contract and decode its body.

    The link must use https, point at ``host`` + ``path`` and carry exactly
    one ``title`` and one non-empty ``body`` query parameter.
    """

    parsed = urlparse(url)
    problems: List[str] = []
    if parsed.scheme != "https":
        problems.append(f"expected https, got {parsed.scheme or 'no scheme'}")
    if parsed.hostname != host:
        problems.append(f"expected host {host}, got {parsed.hostname}")
    if parsed.path != path:
        problems.append(f"expected path {path}, got {parsed.path or '/'}")

    params = parse_qs(parsed.query, keep_blank_values=True)
    for name in ("title", "body"):
        values = params.get(name, [])
        if len(values) != 1:
            problems.append(f"expected exactly one {name} parameter, got {len(values)}")
    if problems:
        raise IssueReportError(url, problems)

    body = params["body"][0]
    if not body.strip():
        raise IssueReportError(url, ["body parameter is empty"])
    return IssueReport(url=url, title=params["title"][0], body=body)


__all__ = ["parse_issue_report"]
