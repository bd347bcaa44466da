"""Agent control plane: confirmations, hooks, tools, and the loop."""
