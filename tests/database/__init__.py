"""
Tests for the shared database layer.
"""
