"""Adapters connecting the engine to storage, HTTP and notification providers."""
