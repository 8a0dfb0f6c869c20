"""Permission and policy evaluation for commands."""
