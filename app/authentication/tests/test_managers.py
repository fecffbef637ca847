"""
Tests for UserManager.

Covers email-based creation and the case-insensitive lookup that billing
uses when a gateway notification carries only a customer email.
"""

import pytest
from django.db import IntegrityError, transaction

from authentication.models import User
from authentication.tests.factories import UserFactory


class TestUserManagerCreateUser:
    """Tests for UserManager.create_user()."""

    def test_creates_user_with_email_and_password(self, db):
        """
        Given valid email and password
        When create_user is called
        Then a user is created that can authenticate with the password
        """
        user = User.objects.create_user(email="new@example.com", password="Secure123!")

        assert user.pk is not None
        assert user.email == "new@example.com"
        assert user.check_password("Secure123!") is True

    def test_normalizes_email_domain_to_lowercase(self, db):
        user = User.objects.create_user(email="Jane.Doe@EXAMPLE.COM")

        assert user.email == "Jane.Doe@example.com"

    def test_user_without_password_has_unusable_password(self, db):
        user = User.objects.create_user(email="nopass@example.com")

        assert user.has_usable_password() is False

    def test_missing_email_raises(self, db):
        with pytest.raises(ValueError, match="Email field must be set"):
            User.objects.create_user(email="")


class TestUserManagerCreateSuperuser:
    """Tests for UserManager.create_superuser()."""

    def test_superuser_has_elevated_flags(self, db):
        admin = User.objects.create_superuser(email="admin@example.com", password="pw")

        assert admin.is_staff is True
        assert admin.is_superuser is True

    def test_superuser_requires_staff_flag(self, db):
        with pytest.raises(ValueError, match="is_staff=True"):
            User.objects.create_superuser(
                email="admin@example.com", password="pw", is_staff=False
            )


class TestUserManagerGetByEmail:
    """Tests for UserManager.get_by_email()."""

    def test_matches_case_insensitively(self, db):
        user = UserFactory(email="buyer@example.com")

        assert User.objects.get_by_email("BUYER@Example.com") == user

    def test_strips_surrounding_whitespace(self, db):
        user = UserFactory(email="buyer@example.com")

        assert User.objects.get_by_email("  buyer@example.com ") == user

    def test_returns_none_for_unknown_email(self, db):
        assert User.objects.get_by_email("ghost@example.com") is None

    def test_returns_none_for_blank_email(self, db):
        assert User.objects.get_by_email("") is None
        assert User.objects.get_by_email(None) is None

    def test_ignores_inactive_users(self, db):
        UserFactory(email="gone@example.com", is_active=False)

        assert User.objects.get_by_email("gone@example.com") is None


class TestUserEmailUniqueness:
    def test_email_is_unique_regardless_of_case(self, db):
        UserFactory(email="dup@example.com")

        with pytest.raises(IntegrityError):
            with transaction.atomic():
                User.objects.create_user(email="DUP@example.com")
