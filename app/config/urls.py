"""
URL configuration for the messaging backend.

URL Structure:
    /                              - ReDoc API documentation
    /api/docs/                     - ReDoc API documentation
    /admin/                        - Django admin interface
    /health/                       - Health check endpoint (for load balancers, Docker)
    /schema/                       - OpenAPI schema (YAML)
    /api/v1/auth/                  - Profile and user directory
        me/                        - Current user (GET/PATCH)
        users/                     - User search (?search=)
    /api/v1/social/                - Friend graph
        requests/                  - Send / list friend requests
        requests/{id}/accept|reject|cancel/
        friends/                   - Friend list
        friends/{user_id}/         - Remove friend
    /api/v1/chat/                  - Rooms, private chats, messages, presence
        (see chat/urls.py)
    ws/realtime/                   - Realtime socket (config/asgi.py)
"""

from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView

from core.views import health_check

# =============================================================================
# API v1 Routes
# =============================================================================
api_v1_patterns = [
    path("auth/", include("authentication.urls")),
    path("social/", include("social.urls")),
    path("chat/", include("chat.urls")),
]

urlpatterns = [
    # Documentation
    path("", SpectacularRedocView.as_view(url_name="schema"), name="redoc"),
    path("api/docs/", SpectacularRedocView.as_view(url_name="schema"), name="api-docs"),
    path("schema/", SpectacularAPIView.as_view(), name="schema"),
    # Admin
    path("admin/", admin.site.urls),
    # Health check (Docker, Kubernetes, load balancers)
    path("health/", health_check, name="health_check"),
    # API v1
    path("api/v1/", include(api_v1_patterns)),
]

admin.site.site_header = "Messaging Admin"
admin.site.site_title = "Messaging Admin"
admin.site.index_title = "Conversations, friends and presence"
