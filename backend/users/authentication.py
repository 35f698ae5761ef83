from rest_framework_simplejwt.authentication import JWTAuthentication
from rest_framework_simplejwt.exceptions import AuthenticationFailed, InvalidToken
from django.conf import settings
from django.contrib.auth import get_user_model

User = get_user_model()


class CookieJWTAuthentication(JWTAuthentication):
    """
    Reads the access token from the auth cookie, falling back to the
    Authorization header used by kitchen terminals and the offline queue.
    """

    def authenticate(self, request):
        access_token = request.COOKIES.get(settings.SIMPLE_JWT["AUTH_COOKIE"])
        if not access_token:
            return super().authenticate(request)

        validated_token = self.get_validated_token(access_token)
        return self.get_user(validated_token), validated_token

    def get_user(self, validated_token):
        """
        Use all_objects to bypass tenant filtering.

        Authentication runs before the tenant context is trusted, and the
        token's user_id maps to exactly one user row in one tenant.
        """
        try:
            user_id = validated_token[settings.SIMPLE_JWT.get('USER_ID_CLAIM', 'user_id')]
        except KeyError:
            raise InvalidToken('Token contained no recognizable user identification')

        try:
            user = User.all_objects.select_related('tenant').get(
                **{settings.SIMPLE_JWT.get('USER_ID_FIELD', 'id'): user_id}
            )
        except User.DoesNotExist:
            raise AuthenticationFailed('User not found', code='user_not_found')

        if not user.is_active:
            raise AuthenticationFailed('User is inactive', code='user_inactive')

        return user
