"""Huggnote command-line interface (``huggnote`` console script)."""
