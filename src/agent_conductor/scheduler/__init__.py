"""Cron evaluation for recurring jobs with exactly-once run instances."""
