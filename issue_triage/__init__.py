"""Automated triage for newly opened GitHub issues."""

__version__ = "0.3.0"
