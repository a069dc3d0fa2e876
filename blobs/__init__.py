"""blobs/ -- Opaque document storage keyed by path, addressed by URL.

Layer rule: blobs/ imports only stdlib, third-party libraries, core/ and
auth/errors.py. It does NOT import from api/ or notify/.
"""
