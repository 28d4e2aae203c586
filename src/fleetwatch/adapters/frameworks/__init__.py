"""Web framework integrations."""

from fleetwatch.adapters.frameworks.asgi import RequestMonitoringMiddleware

__all__ = ["RequestMonitoringMiddleware"]
