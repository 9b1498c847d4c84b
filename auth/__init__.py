"""auth/ -- Credential verification and session-token lifecycle.

Leaf-first: passwords (bcrypt), tokens (access-token codec), store
(users + refresh tokens), session (login/refresh/logout/me), guard
(bearer gate), dependencies (FastAPI wiring).

Layer rule: auth/ imports only stdlib + third-party libraries.
It does NOT import from api/. api/ and main.py import from auth/.
"""
