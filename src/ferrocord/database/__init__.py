"""
Database package for Ferrocord.

Owns the single SQLite connection, the schema (tags, aliases and their
collision triggers) and the coordinator that opens and closes both.

Public API:
    - Database: Opens the connection and initializes the schema
    - ConnectionManager: Serialised transactions over one aiosqlite connection
"""
