"""Report generation: per-path grouping of function comparisons and the on-disk report tree."""

from rebuild_comparer.reports.generator import (
    page_name,
    render_diff_html,
    render_index,
    structure_report_data,
    write_report,
)

__all__ = [
    "page_name",
    "render_diff_html",
    "render_index",
    "structure_report_data",
    "write_report",
]
