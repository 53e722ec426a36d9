"""
Core modules for Dust Fetch: networking, VPN tunnel, logging and errors
"""
