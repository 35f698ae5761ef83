import logging

from django.utils.decorators import method_decorator
from django_ratelimit.decorators import ratelimit
from rest_framework import permissions, status
from rest_framework.response import Response
from rest_framework.views import APIView

from .serializers import StaffLoginSerializer, UserSerializer
from .services import UserService

logger = logging.getLogger(__name__)


@method_decorator(
    ratelimit(key="ip", rate="5/m", method="POST", block=True), name="post"
)
class StaffLoginView(APIView):
    """
    Staff login for the restaurant named by the X-Tenant header.

    The access token is set as a cookie for the browser POS and also
    returned in the body for kitchen terminals that replay queued actions
    with a Bearer header.
    """

    authentication_classes = []
    permission_classes = [permissions.AllowAny]

    def post(self, request, *args, **kwargs):
        serializer = StaffLoginSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        user = UserService.authenticate_staff(request.tenant, **serializer.validated_data)
        if not user:
            logger.warning(f"Failed staff login for tenant {request.tenant.slug}")
            return Response(
                {"error": "Invalid credentials"}, status=status.HTTP_401_UNAUTHORIZED
            )

        tokens = UserService.generate_tokens_for_user(user)
        response = Response({"user": UserSerializer(user).data, **tokens})
        UserService.set_auth_cookies(response, tokens["access"])
        return response


class CurrentUserView(APIView):
    def get(self, request, *args, **kwargs):
        return Response(UserSerializer(request.user).data)
