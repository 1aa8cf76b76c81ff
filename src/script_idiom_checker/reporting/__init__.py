"""Diagnostic aggregation and rendering."""

from script_idiom_checker.reporting.reporter import Reporter

__all__ = ["Reporter"]
