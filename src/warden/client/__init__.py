"""Terminal-facing pieces of the warden CLI."""
