"""
Laminar tasks.
"""
