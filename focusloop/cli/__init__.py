"""Command-line interface for focusloop."""
