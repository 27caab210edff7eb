"""Anonymous heartbeat ingestion and hierarchical rollups."""

__version__ = "0.3.0"
