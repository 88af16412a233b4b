"""Delegated work: proposal lifecycle, storage, operator commands and approval."""
