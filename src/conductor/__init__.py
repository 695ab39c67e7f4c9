"""
conductor - package root

File: src/conductor/__init__.py

Purpose
- Iterative gather -> act -> verify orchestration of capability-typed workers
  (search, code, test) over a shared, size-bounded context store.

Functional requirements
- Must not have side effects at import time (no config loading, no logging init).
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
