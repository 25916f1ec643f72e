"""Timed assessment session orchestration."""
