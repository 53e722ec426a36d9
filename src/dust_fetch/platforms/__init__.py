"""
Platform integrations for Dust Fetch
"""
