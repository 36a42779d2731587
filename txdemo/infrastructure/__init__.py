"""Infrastructure Layer — database connection and cross-cutting concerns.

Invariants:
    - Infrastructure never imports from services/
    - Every driver failure is mapped to a typed TxDemoError at this boundary
"""
