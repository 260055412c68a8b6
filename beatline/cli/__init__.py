"""CLI module - operator commands."""
