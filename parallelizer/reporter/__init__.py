"""
Status reporter module.
"""

from parallelizer.reporter.status import (
    StatusReporter,
    format_duration,
    render_status_table,
    write_status_report,
)

__all__ = [
    "StatusReporter",
    "format_duration",
    "render_status_table",
    "write_status_report",
]
