"""
Billing Kernel - shared foundations for the billing engines.

Provides:
- Immutable domain types for sales-order terms and usage agreements
- Typed exception hierarchy with machine-readable codes
- Structured JSON logging
"""

__version__ = "0.1.0"
