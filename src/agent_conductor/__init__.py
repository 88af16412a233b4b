"""Orchestration core for a delegating coding agent."""

__version__ = "0.1.0"
