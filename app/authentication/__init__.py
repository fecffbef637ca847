"""
Authentication application.

Provides the email-based User model that billing records belong to.
API clients authenticate with bearer JWTs (djangorestframework-simplejwt).

Usage:
    from authentication.models import User
"""
