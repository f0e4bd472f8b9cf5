"""auth/ -- Users, signed tokens and authentication guards for stormstarter.

Layer rule: auth/ imports only core/, stdlib and third-party libraries.
It does NOT import from api/. api/ imports from auth/, not the other way around.
"""
