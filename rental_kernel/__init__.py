"""
Rental Kernel - shared infrastructure for the rental agreement engine.

Provides the pieces every rental module builds on:
- Typed exception hierarchy with machine-readable codes
- Structured JSON logging with request-scoped context
- Injectable clock and calendar arithmetic
- Workflow (state machine) value objects
- Outbound mutation records returned to the host application
- Persisted, lock-protected sequence counters
"""

__version__ = "0.1.0"
