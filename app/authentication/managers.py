"""
User manager for email-identified accounts.

Passwords are hashed through set_password(); accounts created without one
get an unusable password. The domain part of the email is lower-cased.
"""

from django.contrib.auth.models import BaseUserManager


class UserManager(BaseUserManager):
    """
    Creates accounts and resolves them by email.

    Usage:
        user = User.objects.create_user(email="member@example.com", password="pw")
        user = User.objects.get_by_email("MEMBER@example.com")
    """

    def create_user(self, email, password=None, **extra_fields):
        """
        Create an account.

        Raises:
            ValueError: No email given
        """
        if not email:
            raise ValueError("The Email field must be set")

        extra_fields.setdefault("is_staff", False)
        extra_fields.setdefault("is_superuser", False)

        user = self.model(email=self.normalize_email(email), **extra_fields)
        if password:
            user.set_password(password)
        else:
            user.set_unusable_password()
        user.save(using=self._db)
        return user

    def create_superuser(self, email, password=None, **extra_fields):
        """
        Create an admin account for operating billing (coupons, replays).

        Raises:
            ValueError: is_staff or is_superuser explicitly set to False
        """
        extra_fields.setdefault("is_staff", True)
        extra_fields.setdefault("is_superuser", True)

        for flag in ("is_staff", "is_superuser"):
            if extra_fields.get(flag) is not True:
                raise ValueError(f"Superuser must have {flag}=True.")

        return self.create_user(email, password, **extra_fields)

    def get_by_email(self, email):
        """
        Case-insensitive lookup of an active account by email.

        Gateways echo back whatever casing the customer typed at checkout.

        Returns:
            User or None
        """
        if not email:
            return None
        return self.filter(email__iexact=email.strip(), is_active=True).first()
