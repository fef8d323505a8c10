"""Canonical transcripts for AI coding assistant sessions."""

__version__ = "0.3.0"
