"""Tests for the campaign asset search service.

Unit tests run against in-memory fakes of the asset store, embedding
provider and metrics sink (see ``conftest.py``). Tests marked
``integration`` need live PostgreSQL/OpenSearch/Redis services.
"""
