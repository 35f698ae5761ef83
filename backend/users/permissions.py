from rest_framework import permissions
from .models import User
import logging

logger = logging.getLogger(__name__)


class IsRestaurantStaff(permissions.BasePermission):
    """
    Authenticated user whose tenant is the tenant resolved for this request.
    """

    message = "You do not have access to this restaurant."

    def has_permission(self, request, view):
        user = request.user
        if not user or not user.is_authenticated:
            return False

        tenant = getattr(request, 'tenant', None)
        if tenant is None or user.tenant_id != tenant.id:
            logger.warning(
                f"User {user.pk} denied: token tenant does not match request tenant"
            )
            return False
        return True


class IsKitchenOrManager(IsRestaurantStaff):
    """Kitchen staff, managers and owners may move orders through the kitchen."""

    def has_permission(self, request, view):
        if not super().has_permission(request, view):
            return False
        return request.user.role in [
            User.Role.OWNER,
            User.Role.MANAGER,
            User.Role.KITCHEN,
        ]


class IsManagerOrHigher(IsRestaurantStaff):
    def has_permission(self, request, view):
        if not super().has_permission(request, view):
            return False
        return request.user.role in [User.Role.OWNER, User.Role.MANAGER]
