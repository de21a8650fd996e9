"""Readers for project snapshots written by the recorder."""
