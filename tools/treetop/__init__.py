"""
treetop - A 'top' like text/log file monitor.

This package provides a curses dashboard that watches a fixed list of
growing text files and shows, for each, its latest line plus an on-demand
view of the file's tail, updating live as the files change.

Package Structure:
    - cli.py: Command-line interface and entry point
    - tui/: Change detection, tail extraction, background worker and views
    - utils/: Watch-list parsing and diagnostic logging

Usage:
    treetop <config> [-d secs] [-w notify|poll]
    python -m treetop <config>

Example:
    treetop ~/.config/treetop/servers.conf -w poll
"""

__version__ = "0.2.0"
