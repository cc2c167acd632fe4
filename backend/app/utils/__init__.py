"""
Utilities Package for the Tubely Backend.

Modules:
--------
file_validator:
    Media type parsing and allow-lists per upload kind, size budgets.

naming:
    Random asset keys and aspect-ratio classification for key prefixes.

logger:
    JSON and human-readable formatters, ``setup_logging`` and a context
    adapter that attaches request fields to every record.
"""
