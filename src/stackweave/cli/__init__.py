"""Command line interface for stackweave."""
