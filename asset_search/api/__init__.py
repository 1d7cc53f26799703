"""API subpackage for the search service.

Routers expose the search and cache-metrics endpoints. The transport layer
remains thin and delegates to ``SearchOrchestrator``.
"""
