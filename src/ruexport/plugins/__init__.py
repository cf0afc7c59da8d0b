"""Store adapters and output sinks."""
