"""Core infrastructure: settings, inputs and logging."""
