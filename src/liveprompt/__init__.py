"""Live request editing for outgoing LLM chat requests."""

__version__ = "0.1.0"
