"""Live Orders CLI: watches a filtered order list over SSE."""

__version__ = "0.1.0"
