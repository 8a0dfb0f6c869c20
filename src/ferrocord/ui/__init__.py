"""
User interface components for Ferrocord.

- **console.py**: Interactive operator console for live bot management. Features
  a command-based interface with status checks, queue depths, guild listing,
  command metadata, and graceful shutdown/restart with process replacement.
  Uses prompt_toolkit for non-blocking I/O.
"""
