"""Command line interface for imscli."""
