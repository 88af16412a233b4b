"""Command gating against ordered regex rules."""
