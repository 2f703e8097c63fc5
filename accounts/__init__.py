"""accounts/ -- Account Directory: users, roles, and profile-change alerts.

Layer rule: accounts/ imports only stdlib, third-party libraries and core/.
It knows nothing about tokens, signatures or HTTP.
"""
