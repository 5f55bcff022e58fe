"""identity/ -- User and permission persistence plus the usecases over it.

Layer rule: identity/ imports core/, auth/ and third-party libraries.
It does NOT import from api/.
api/ imports from identity/, not the other way around.
"""
