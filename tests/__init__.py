"""
Test suites for the principal engagement repository.
"""
