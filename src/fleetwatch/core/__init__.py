"""Domain models, ports and pure aggregation logic."""
