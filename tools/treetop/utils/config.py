"""
Watch-list parsing.

This module reads the configuration file that lists the files treetop
monitors, one per line, and turns it into an ordered list of entries.

Purpose:
    The order of the watch list is the display order of the dashboard, so
    the loader preserves it exactly and does no sorting or de-duplication.

File Format:
    # full-line comment
    /var/log/syslog
    /var/log/nginx/access.log   web access     # trailing comment
    ~/build/output.log

    The first whitespace-separated token is the path. Anything after it is
    an optional display name; without one, the file's basename is shown.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional

# Everything after this character on a line is ignored
COMMENT_CHAR = "#"


class ConfigError(Exception):
    """Raised when the watch list itself cannot be used."""


@dataclass(frozen=True)
class WatchEntry:
    """A (path, display name) pair from the watch list."""
    path: Path
    name: str


def parse_line(line: str) -> Optional[WatchEntry]:
    """
    Parse a single watch-list line.

    Returns:
        WatchEntry for a path line, None for blank and comment lines.
        The path is expanded (~) and made absolute but not checked for
        existence.
    """
    # Drop trailing comment, then surrounding whitespace
    text = line.split(COMMENT_CHAR, 1)[0].strip()
    if not text:
        return None

    parts = text.split(None, 1)
    # Symlinks stay unresolved; each stat() follows the link afresh
    path = Path(parts[0]).expanduser().absolute()
    name = parts[1].strip() if len(parts) > 1 else path.name
    return WatchEntry(path=path, name=name)


def parse_watch_list(lines: Iterable[str]) -> List[WatchEntry]:
    """Parse watch-list lines, keeping their order."""
    entries = []
    for line in lines:
        entry = parse_line(line)
        if entry is not None:
            entries.append(entry)
    return entries


def load_watch_list(config_path: Path) -> List[WatchEntry]:
    """
    Read and parse the watch-list file.

    Args:
        config_path: Path to the configuration file.

    Returns:
        Entries in file order. Entries are not checked for readability;
        FileRegistry.open does that and skips the ones it cannot open.

    Raises:
        ConfigError: If the configuration file cannot be read.
    """
    try:
        with open(config_path, "r", encoding="utf-8", errors="replace") as f:
            return parse_watch_list(f)
    except OSError as exc:
        raise ConfigError(
            f"Could not open config file '{config_path}': {exc.strerror or exc}"
        ) from exc
