"""Output sinks."""

from ruexport.plugins.sinks.csv_sink import ShardedCSVSink, format_field

__all__ = ["ShardedCSVSink", "format_field"]
