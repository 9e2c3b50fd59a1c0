"""
Core services: entitlements, one-time codes, access requests, test sessions
and typing scores.
"""
