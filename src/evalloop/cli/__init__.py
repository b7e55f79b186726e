"""Command-line interface for evalloop."""
