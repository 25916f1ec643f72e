"""Attempt persistence and lifecycle management."""
