"""
generic_repository.observability

Observability package.

Responsibilities:
- Structured logging configuration.
"""

# Package marker.
