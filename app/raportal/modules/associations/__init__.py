"""
Associations: the regional chapters users belong to.

The official list is seeded idempotently; each association has at most one
current president, reassigned whenever a president registers.
"""
