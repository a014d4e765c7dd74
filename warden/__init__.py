"""Warden — brute-force protection for an HTTP API.

Request gating (blocklist + allow-list) in front of the API, and a periodic
threat analyzer that reads the login log and blocks offending IP addresses.
"""

__version__ = "1.0.0"
