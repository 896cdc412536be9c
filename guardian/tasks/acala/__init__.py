"""
Acala tasks.
"""
