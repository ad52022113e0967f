"""
Tests for authentication app.

This package contains test modules for:
- test_managers.py: UserManager creation rules
- test_models.py: User display name behaviour
- factories.py: UserFactory shared with the chat tests

Usage:
    pytest authentication/tests/
"""
