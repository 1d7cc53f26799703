"""Search retrievers.

Retrievers encapsulate how query vectors and candidates are obtained (embedding
cache, embedding provider, asset store primitives) before ranking. Splitting
retrieval from ranking keeps pipelines modular and testable.
"""
