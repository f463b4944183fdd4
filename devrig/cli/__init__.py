"""Command-line interface for devrig."""
