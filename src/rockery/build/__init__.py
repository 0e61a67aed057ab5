"""Incremental build orchestration."""
