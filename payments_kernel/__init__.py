"""
Payments Kernel

Shared infrastructure for the property payments core:
- Typed, coded exceptions
- Structured JSON logging
- SQLAlchemy base, engine and session scope
- Fixed-point amount helpers and an injectable clock
"""

__version__ = "0.1.0"
