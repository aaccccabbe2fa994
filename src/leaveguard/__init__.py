"""
leaveguard: leave management service with layered access control.

Password plus one-time-code login with lockout, and an access decision
engine combining RBAC, MAC, DAC, RuBAC and ABAC checks.
"""

__version__ = "0.1.0"
