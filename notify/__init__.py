"""notify/ -- Outbound email for account lifecycle events.

Layer rule: notify/ imports only stdlib and core/.
"""
