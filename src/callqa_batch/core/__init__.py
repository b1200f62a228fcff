"""Core types, lifecycle and error taxonomy."""
