"""Pydantic data models for liveprompt."""
