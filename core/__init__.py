"""core/ -- Settings, the Result/error vocabulary, and database helpers.

Layer rule: core/ imports only stdlib + third-party libraries.
It does NOT import from api/, auth/ or identity/.
"""
