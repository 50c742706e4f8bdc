"""Grievance lifecycle engine: hierarchical escalation, due dates and audit trail."""

__version__ = "0.1.0"
