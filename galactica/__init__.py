"""Galactica: long-term memory core for coding agents and capture tools."""

__version__ = "0.1.0"
