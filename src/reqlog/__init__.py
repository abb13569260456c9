"""
Request-scoped structured logging for Starlette / FastAPI services.

This library provides:
- Process-wide JSON logger initialization
- Request identifier generation and propagation
- Request completion logging middleware
- Exception recovery middleware
"""

__version__ = "1.0.0"
__author__ = "BPT Team"
