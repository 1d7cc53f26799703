"""Hybrid search and ranking engine for campaign assets.

Layout:
- ``models``: request, result and timing types.
- ``retrievers``: embedding cache, embedding provider client, candidate retrieval.
- ``ranking``: reciprocal rank fusion and score normalization.
- ``hybrid``: mode selection, retrieval strategies and the search orchestrator.
- ``runtime``: sampled search-quality metrics and their sinks.
- ``api``: HTTP endpoints (thin transport over the orchestrator).
"""
