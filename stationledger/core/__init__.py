"""Core - configuration, logging and request actor."""
