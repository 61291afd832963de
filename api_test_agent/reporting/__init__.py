"""Test report generation."""

from .report import ReportGenerator

__all__ = ["ReportGenerator"]
