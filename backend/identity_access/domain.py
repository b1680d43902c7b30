"""
Identity domain constants.

Why:
- Centralize allowed roles to avoid drift between the session store and the
  web layer's role checks.
"""

from __future__ import annotations

# Keep roles minimal and explicit. Immutable to prevent accidental mutation.
ALLOWED_ROLES = frozenset({"student", "teacher", "operator", "admin"})

__all__ = ["ALLOWED_ROLES"]
