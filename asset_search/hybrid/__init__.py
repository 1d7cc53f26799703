"""Hybrid search components.

Includes the ``SearchOrchestrator`` which picks a search mode, drives the
matching retrieval strategy and applies the final score filter and limit.
"""
