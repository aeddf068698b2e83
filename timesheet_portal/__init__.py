"""Timesheet portal backend: CSV import pipeline and import log API."""

__version__ = "1.0.0"
