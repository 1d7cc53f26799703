"""Shared libraries for the campaign asset search service.

Subpackages:
- ``libs.common``: configuration, logging, metrics and tracing.
- ``libs.asset_store``: document store abstraction and concrete backends.

Notes:
- Avoid search-engine logic here; keep modules cohesive and broadly useful.
"""
