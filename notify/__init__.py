"""notify/ -- Outbound notifications (email) for membership state changes.

Layer rule: notify/ imports only stdlib, third-party libraries, core/ and
auth/errors.py. It does NOT import from api/ or blobs/.
"""
