"""
WebSocket URL routing for the chat application.

URL Patterns:
    ws/realtime/ - One socket per client; topics are chosen by subscribe
                   actions sent over it

Authentication:
    JWT token passed as ?token=<jwt_access_token> or via the "jwt"
    subprotocol. JWTAuthMiddleware validates the token and attaches the
    user to the consumer's scope.
"""

from django.urls import path

from chat import consumers

websocket_urlpatterns = [
    path("ws/realtime/", consumers.RealtimeConsumer.as_asgi()),
]
