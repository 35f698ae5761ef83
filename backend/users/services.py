import logging

from django.conf import settings
from rest_framework_simplejwt.tokens import RefreshToken

from .models import User

logger = logging.getLogger(__name__)


class UserService:

    @staticmethod
    def authenticate_staff(tenant, email: str, password: str) -> User | None:
        """Email and password are scoped to one restaurant; the same email may exist in another."""
        try:
            user = User.all_objects.get(tenant=tenant, email__iexact=email)
        except User.DoesNotExist:
            return None
        if not user.is_active or not user.check_password(password):
            return None
        return user

    @staticmethod
    def generate_tokens_for_user(user: User) -> dict:
        """
        Tokens carry a tenant_id claim so TenantMiddleware can resolve the
        restaurant before authentication runs.
        """
        refresh = RefreshToken.for_user(user)
        refresh["tenant_id"] = str(user.tenant_id)
        refresh["role"] = user.role
        return {
            "refresh": str(refresh),
            "access": str(refresh.access_token),
        }

    @staticmethod
    def set_auth_cookies(response, access_token, cookie_path="/api"):
        response.set_cookie(
            key=settings.SIMPLE_JWT["AUTH_COOKIE"],
            value=access_token,
            max_age=int(settings.SIMPLE_JWT["ACCESS_TOKEN_LIFETIME"].total_seconds()),
            path=cookie_path,
            httponly=True,
            secure=not settings.DEBUG,
            samesite="Lax",
        )
