"""Heft - find out what is taking up space under a directory."""

__version__ = "0.1.0"
