"""Rate limiting adapters.

A static per-action policy table evaluated against one transactional quota
record per user. The store behind the limiter can be swapped (Firestore,
in-memory) without changing its consumers.
"""
