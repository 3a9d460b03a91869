"""Rank-gated task assignment service."""

__version__ = "0.1.0"
