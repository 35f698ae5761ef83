from rest_framework import viewsets, filters
from django_filters.rest_framework import DjangoFilterBackend
from ..pagination import StandardPagination


class ReadOnlyBaseViewSet(viewsets.ReadOnlyModelViewSet):
    """
    Base ViewSet for tenant-scoped read endpoints.

    Mutations are exposed as explicit @action routes that delegate to the
    service layer, so every write goes through the same transactional code
    path as the offline replay and the Celery tasks.

    Features:
    - Standard pagination, filtering, and ordering
    - Queryset re-evaluated per request so tenant context applies

    Usage:
        class BillViewSet(ReadOnlyBaseViewSet):
            queryset = Bill.objects.all()
            serializer_class = BillSerializer
    """

    pagination_class = StandardPagination
    filter_backends = [
        DjangoFilterBackend,
        filters.OrderingFilter,
    ]
    ordering = ['-created_at']

    def get_queryset(self):
        """
        The class-level queryset is evaluated at import time (before tenant
        context exists), so build a fresh tenant-scoped one here.
        """
        queryset = self.queryset.model.objects.all()
        select_related = getattr(self, 'select_related_fields', None)
        if select_related:
            queryset = queryset.select_related(*select_related)
        prefetch_related = getattr(self, 'prefetch_related_fields', None)
        if prefetch_related:
            queryset = queryset.prefetch_related(*prefetch_related)
        return queryset
