"""
URL configuration for the social graph API.

All URLs are prefixed with /api/v1/social/ in the main URL configuration.
"""

from django.urls import path

from social.views import (
    AcceptFriendRequestView,
    CancelFriendRequestView,
    FriendDetailView,
    FriendListView,
    FriendRequestListView,
    RejectFriendRequestView,
)

app_name = "social"

urlpatterns = [
    path("requests/", FriendRequestListView.as_view(), name="request-list"),
    path(
        "requests/<uuid:request_id>/accept/",
        AcceptFriendRequestView.as_view(),
        name="request-accept",
    ),
    path(
        "requests/<uuid:request_id>/reject/",
        RejectFriendRequestView.as_view(),
        name="request-reject",
    ),
    path(
        "requests/<uuid:request_id>/cancel/",
        CancelFriendRequestView.as_view(),
        name="request-cancel",
    ),
    path("friends/", FriendListView.as_view(), name="friend-list"),
    path("friends/<uuid:user_id>/", FriendDetailView.as_view(), name="friend-detail"),
]
