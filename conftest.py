"""Root conftest, loaded before any test module imports glean."""

import os

# Rich reads these when a Console is created; CI often sets FORCE_COLOR,
# which puts ANSI codes into CliRunner output and breaks JSON parsing.
os.environ.pop("FORCE_COLOR", None)
os.environ["NO_COLOR"] = "1"
