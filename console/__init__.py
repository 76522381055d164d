"""Operator console: command parsing, rendering and the interactive session."""
