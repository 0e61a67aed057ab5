"""Rockery - Turn a folder of notes into a website."""

__version__ = "0.1.0"
