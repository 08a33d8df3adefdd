"""Themis workflow: approval state machine, permission policy and notification engine."""

__version__ = "1.0.0"
