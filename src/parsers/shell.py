"""Best-effort detection of file reads inside shell commands.

Kept behind a single function so it can be replaced or disabled without
touching tool-call correlation.
"""

import re

READ_COMMANDS = ("cat", "less", "head", "tail", "bat")

_READ_RE = re.compile(
    r"(?:^|[\s;&|(\"'])(?:" + "|".join(READ_COMMANDS) + r")"
    r"\s+(?:-\S+(?:\s+\d+)?\s+)*[\"']?([^\"'\s|<>;&)]+)"
)


def extract_read_path(command: str) -> str | None:
    """Return the first path following a known read command, if any.

    ``bash -lc "sed -n 1,5p x && cat -n src/app.py"`` yields ``src/app.py``.
    Option flags directly after the command name are skipped, along with a
    numeric value following one (``head -n 20 log.txt``).
    """
    match = _READ_RE.search(command)
    if match is None:
        return None
    return match.group(1)
