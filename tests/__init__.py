"""
Test suite for tablewright.
"""
