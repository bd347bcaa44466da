"""Execution core for tool-calling agents: confirmations, hooks, and the agent loop."""

__version__ = "0.3.0"
