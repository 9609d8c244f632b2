"""Configuration loading for liveprompt."""
