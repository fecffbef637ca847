"""
Tests for authentication app.

- test_managers.py: UserManager tests
- factories.py: UserFactory shared with billing tests
"""
