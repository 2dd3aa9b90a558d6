"""
Login by institutional email.

Members never see their username (it mirrors the email), so both the token
endpoint and the admin login resolve accounts by email address.
"""

from django.contrib.auth import get_user_model
from django.contrib.auth.backends import ModelBackend

User = get_user_model()


class EmailBackend(ModelBackend):
    """Resolve the account by email, case-insensitively, then check the password."""

    def authenticate(self, request, username=None, password=None, **kwargs):
        """
        Args:
            request: Current request, or None outside a request
            username: Email typed into a username-style form (admin login)
            password: Raw password
            email: Email sent by the token endpoint; wins over ``username``

        Returns:
            The matching active member, or None
        """
        email = kwargs.get('email', username)

        if email is None or password is None:
            return None

        try:
            user = User.objects.get(email__iexact=email.strip())
        except User.DoesNotExist:
            # Same hashing cost as a wrong password
            User().set_password(password)
            return None

        if user.check_password(password) and self.user_can_authenticate(user):
            return user

        return None
