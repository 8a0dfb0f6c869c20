"""
Configuration management for Ferrocord.

- **app_configuration.py**: File-locked YAML configuration loader for global
  settings: guild and role identifiers, the persistence toggle, command
  prefixes, dispatcher timeout and action sink tuning. Falls back gracefully
  on missing or malformed config files.

- **sink_settings.py**: Typed accessor for the ``action_sink`` section.
"""
