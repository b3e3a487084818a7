"""Command-line client for the voice chat gateway."""
