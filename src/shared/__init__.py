"""
Dual-Brain - Shared Utilities

Ambient functionality used by the routing core:
- Environment-driven configuration
- Structured logging configuration
- Error taxonomy
- Pooled HTTP clients
- Best-effort JSON extraction from model output
"""

__version__ = "0.1.0"
