"""Command line interface for warden."""
