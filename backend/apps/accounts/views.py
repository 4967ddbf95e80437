import uuid
from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.core.cache import cache

from .serializers import UserSerializer

WS_TICKET_TTL_SECONDS = 30


class MeAPIView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        return Response(UserSerializer(request.user).data)


class WebSocketTicketAPIView(APIView):
    """
    Issues a one-time ticket for the drone tracking websocket.
    Browsers cannot set Authorization headers on WS upgrades.
    """
    permission_classes = [IsAuthenticated]

    def post(self, request):
        ticket = str(uuid.uuid4())
        cache.set(f"ws_ticket:{ticket}", request.user.id, timeout=WS_TICKET_TTL_SECONDS)
        return Response({"ticket": ticket, "expires_in": WS_TICKET_TTL_SECONDS})
