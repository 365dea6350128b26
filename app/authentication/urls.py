"""
URL configuration for authentication app.

URL structure:
    /api/v1/auth/me/      - Current user's profile (GET/PATCH)
    /api/v1/auth/users/   - User directory search (GET ?search=)

Tokens are issued by the external identity provider; this app only
consumes them.
"""

from django.urls import path

from authentication.views import MeView, UserDirectoryView

app_name = "authentication"

urlpatterns = [
    path("me/", MeView.as_view(), name="me"),
    path("users/", UserDirectoryView.as_view(), name="user-directory"),
]
