"""Citadel CLI subcommands."""
