"""
generic_repository.db

Persistence package (SQLAlchemy ORM, synchronous).

Responsibilities:
- Provide the declarative base, engine/session helpers, the connection
  provider, the data context with its object sets, and the generic repository.
"""

# Package marker.


# --- Module Notes -----------------------------------------------------------
# Nothing here knows about concrete entities; callers bring their own mapped classes.
