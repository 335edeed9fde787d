"""Command line interface for vidpeek."""
