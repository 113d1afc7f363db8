"""
Authentication backend that logs users in by email address.
"""

from django.contrib.auth import get_user_model
from django.contrib.auth.backends import ModelBackend

User = get_user_model()


class EmailBackend(ModelBackend):
    """
    Authenticates against the unique, lower-cased email instead of username.
    """

    def authenticate(self, request, username=None, password=None, **kwargs):
        """
        Args:
            request: HTTP request object
            username: Email address (named username for compatibility)
            password: User password

        Returns:
            User object if authentication successful, None otherwise
        """
        email = kwargs.get('email', username)

        if email is None or password is None:
            return None

        try:
            user = User.objects.get(email__iexact=email.strip())
        except User.DoesNotExist:
            # Hash once anyway so unknown emails take as long as wrong passwords
            User().set_password(password)
            return None

        if user.check_password(password) and self.user_can_authenticate(user):
            return user

        return None
