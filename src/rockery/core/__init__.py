"""Identifier algebra, content parsing and the default content pipeline."""
