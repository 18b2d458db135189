"""X-Ray: decision trail recording and cross-pipeline queries for multi-step pipelines."""

__version__ = "0.1.0"
