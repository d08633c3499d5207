"""Financial report snapshots."""

from finance_tracker.reports.snapshotter import ReportSnapshotter, default_report_name

__all__ = ["ReportSnapshotter", "default_report_name"]
