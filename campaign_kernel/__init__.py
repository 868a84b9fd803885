"""
Campaign Kernel

Shared foundation for the campaign financial calculation pipeline:
- Typed exception hierarchy with machine-readable codes
- Structured JSON logging with request-scoped context
- Injectable clocks for deterministic timestamps
- Exact-decimal value objects (never binary floats)
- SQLAlchemy declarative base for the persistence adapter
"""

__version__ = "0.1.0"
