"""
Tasks available on every substrate network.
"""
