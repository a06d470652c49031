"""
Tests for the Principal Engagement package.

This package contains tests for:
- Engagement scoring and activity classification
- Configuration and analytics
- Rollup repository and view refresh
- Command-line interface
"""
