"""Root conftest, loaded before any test module imports."""

import os

# CI runners often set FORCE_COLOR=1, which makes Rich add ANSI escape codes
# to progress and error output. Tests compare that output as plain text, so
# Rich's consoles must start in no-color mode.
os.environ.pop("FORCE_COLOR", None)
os.environ["NO_COLOR"] = "1"
