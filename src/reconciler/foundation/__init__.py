"""Foundation utilities for shared infrastructure components.

This package provides shared utilities including:
- Structured JSON logging
- Retry helpers with exponential backoff
- Circuit breaker patterns
"""
