"""auth/ -- Token issuing, scope evaluation, and request authorization.

Layer rule: auth/ imports only core/ + third-party libraries.
It does NOT import from api/ or identity/.
api/ and identity/ import from auth/, not the other way around.
"""
