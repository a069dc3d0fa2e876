"""auth/ -- Credentials, sessions and identity verification for MemberAuth.

Layer rule: auth/ imports stdlib, third-party libraries, core/, notify/ and
blobs/. It does NOT import from api/.
api/ imports from auth/, not the other way around.
"""
