"""Command-line interface for liveprompt."""
