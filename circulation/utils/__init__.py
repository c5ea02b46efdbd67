"""Helpers shared by the engine and its command line."""
