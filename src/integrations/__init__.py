"""
Clients for external AI services.
"""
