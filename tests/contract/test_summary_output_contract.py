from __future__ import annotations

import re

from bulk_import.models.commit_result import ImportSummary
from bulk_import.services.summary import render_summary_line

"""SUMMARY line format contract."""

SUMMARY_PATTERN = re.compile(
    r"^SUMMARY\s+rows=([0-9]+)/([0-9]+)\s+people_created=([0-9]+)\s+people_updated=([0-9]+)\s+"
    r"orgs_created=([0-9]+)\s+orgs_updated=([0-9]+)\s+failed=([0-9]+)\s+"
    r"elapsed_sec=([0-9]+\.?[0-9]*)$"
)


def test_summary_pattern_example_line():
    line = (
        "SUMMARY rows=4/4 people_created=3 people_updated=1 orgs_created=2 orgs_updated=0 "
        "failed=0 elapsed_sec=0.84"
    )
    assert SUMMARY_PATTERN.match(line)


def test_rendered_line_matches_pattern():
    summary = ImportSummary(people_created=3, people_updated=1, organizations_created=2)
    for elapsed in (0, 0.0004, 0.84, 2.0, 125.5):
        line = render_summary_line(summary, 4, 4, elapsed)
        assert SUMMARY_PATTERN.match(line), line
