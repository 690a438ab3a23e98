"""Prometheus metrics."""

from prometheus_client import Counter, Histogram

api_requests_total = Counter("api_requests_total", "Total API requests", ["method", "endpoint", "status"])
api_request_duration = Histogram("api_request_duration_seconds", "API request duration")
webhooks_received_total = Counter("webhooks_received_total", "Calendly webhooks received", ["event", "action"])
contacts_created_total = Counter("contacts_created_total", "Contact form submissions stored")
scheduling_links_created_total = Counter("scheduling_links_created_total", "Single-use scheduling links created")
