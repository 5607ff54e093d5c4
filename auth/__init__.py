"""auth/ -- Authentication and session package for SessionAuth.

Layer rule: auth/ imports from core/, cache/ and users/ plus third-party
libraries. It does NOT import from api/.
api/ imports from auth/, not the other way around.
"""
