"""
Webhook view for the payment gateway.

Runs without authentication or tenant context; the signature is the only
credential. The raw body is passed through untouched because the signature
covers its exact bytes.
"""
import logging

from django.conf import settings
from django.utils.decorators import method_decorator
from django.views.decorators.csrf import csrf_exempt
from django_ratelimit.decorators import ratelimit
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from ..services import WebhookService

logger = logging.getLogger(__name__)


@method_decorator(csrf_exempt, name="dispatch")
@method_decorator(
    ratelimit(key="ip", rate=settings.WEBHOOK_RATE_LIMIT, method="POST", block=True), name="post"
)
class GatewayWebhookView(APIView):
    """
    Acknowledges with 200 once a delivery is applied or recognised as a
    duplicate. Errors while applying answer 500 so the gateway redelivers.
    """

    authentication_classes = []
    permission_classes = [AllowAny]

    def post(self, request, *args, **kwargs):
        raw_body = request.body
        signature = request.headers.get("x-webhook-signature")
        timestamp = request.headers.get("x-webhook-timestamp")

        result = WebhookService.ingest(raw_body, signature, timestamp)
        return Response({
            "received": True,
            "status": result.status,
            "reason": result.reason,
        })
