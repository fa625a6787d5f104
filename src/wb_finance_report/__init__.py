"""
WB Finance Report

Reconciliation and financial aggregation engine for Wildberries seller reports.
Joins realization, advertising ledger and catalog data over a report window,
resolves buffer-day documents at the window edges and derives the
"По периодам" / "По товарам" summaries used by the seller spreadsheet.
"""

__version__ = "1.0.0"
__author__ = "WB Finance Report Team"
