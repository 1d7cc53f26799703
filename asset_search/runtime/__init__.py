"""Runtime concerns of the search service: quality sampling and metrics sinks."""
