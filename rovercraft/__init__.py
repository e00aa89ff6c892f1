"""Partitioned, replicated in-memory probe store with an HTTP API and gRPC peer synchronisation."""

__version__ = "0.1.0"