"""
Users feature: read-only listing of the users table.
"""
