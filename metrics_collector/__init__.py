"""Runtime metrics agent and the server that merges and persists its reports."""

__version__ = "0.1.0"
