"""
Utility helpers for Ferrocord.

- **logger.py**: Centralized logging configuration with colored console output,
  rotating file handlers, and per-session log aggregation. Suppresses noise from
  Discord internals. Uses prompt_toolkit for non-blocking console I/O.

- **text.py**: Name normalization and message-length helpers shared by the
  repository and the handlers.
"""
