"""auth/ -- Account lifecycle and authentication core.

Registration with admin approval, expiring single-use tokens, forced
first-login password replacement, signed sessions, and Google login with
just-in-time accounts.

Layer rule: auth/ imports only stdlib, third-party libraries, core/, and the
notify/ protocol. It does NOT import from api/.
api/ imports from auth/, not the other way around.
"""
