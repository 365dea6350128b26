"""
Views for the social graph API.

URL Structure (prefixed with /api/v1/social/):
    requests/                    GET (?direction=incoming|outgoing), POST
    requests/{id}/accept/        POST
    requests/{id}/reject/        POST
    requests/{id}/cancel/        POST
    friends/                     GET
    friends/{user_id}/           DELETE

All business rules live in social.services; views translate HTTP to
service calls and failed results to category-only error bodies.
"""

from __future__ import annotations

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import (
    OpenApiParameter,
    OpenApiResponse,
    extend_schema,
    extend_schema_view,
)
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from authentication.serializers import PublicUserSerializer
from core.views import service_error_response
from social.serializers import (
    FriendRequestSerializer,
    RequestDirectionSerializer,
    SendFriendRequestSerializer,
)
from social.services import FriendRequestService, FriendshipService


@extend_schema_view(
    get=extend_schema(
        operation_id="list_friend_requests",
        summary="List pending friend requests",
        tags=["Social - Requests"],
        parameters=[
            OpenApiParameter(
                name="direction",
                type=OpenApiTypes.STR,
                location=OpenApiParameter.QUERY,
                enum=["incoming", "outgoing"],
                description="Inbox (incoming, default) or sent requests (outgoing)",
            ),
        ],
        responses={200: FriendRequestSerializer(many=True)},
    ),
    post=extend_schema(
        operation_id="send_friend_request",
        summary="Send a friend request",
        tags=["Social - Requests"],
        request=SendFriendRequestSerializer,
        responses={
            201: FriendRequestSerializer,
            400: OpenApiResponse(description="Invalid target"),
            404: OpenApiResponse(description="Receiver not found"),
            409: OpenApiResponse(description="Already friends or request pending"),
        },
    ),
)
class FriendRequestListView(APIView):
    """Pending friend requests for the current user."""

    permission_classes = [IsAuthenticated]

    def get(self, request):
        params = RequestDirectionSerializer(data=request.query_params)
        params.is_valid(raise_exception=True)

        if params.validated_data["direction"] == "outgoing":
            requests = FriendRequestService.list_outgoing(request.user)
        else:
            requests = FriendRequestService.list_incoming(request.user)
        return Response(FriendRequestSerializer(requests, many=True).data)

    def post(self, request):
        serializer = SendFriendRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = FriendRequestService.send_request(
            sender=request.user,
            receiver=serializer.validated_data["receiver_id"],
            idempotency_key=serializer.validated_data.get("idempotency_key"),
        )
        if not result.success:
            return service_error_response(result)

        return Response(
            FriendRequestSerializer(result.data).data,
            status=status.HTTP_201_CREATED,
        )


class FriendRequestActionView(APIView):
    """
    Base view for POST requests/{id}/<action>/.

    Subclasses set ``service_method`` to the FriendRequestService method name.
    """

    permission_classes = [IsAuthenticated]
    service_method: str = ""

    def post(self, request, request_id):
        handler = getattr(FriendRequestService, self.service_method)
        result = handler(request_id, actor=request.user)
        if not result.success:
            return service_error_response(result)
        return Response(FriendRequestSerializer(result.data).data)


@extend_schema_view(
    post=extend_schema(
        operation_id="accept_friend_request",
        summary="Accept a friend request",
        tags=["Social - Requests"],
        request=None,
        responses={200: FriendRequestSerializer},
    )
)
class AcceptFriendRequestView(FriendRequestActionView):
    service_method = "accept_request"


@extend_schema_view(
    post=extend_schema(
        operation_id="reject_friend_request",
        summary="Reject a friend request",
        tags=["Social - Requests"],
        request=None,
        responses={200: FriendRequestSerializer},
    )
)
class RejectFriendRequestView(FriendRequestActionView):
    service_method = "reject_request"


@extend_schema_view(
    post=extend_schema(
        operation_id="cancel_friend_request",
        summary="Cancel a friend request",
        tags=["Social - Requests"],
        request=None,
        responses={200: FriendRequestSerializer},
    )
)
class CancelFriendRequestView(FriendRequestActionView):
    service_method = "cancel_request"


class FriendListView(APIView):
    """The current user's friends."""

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="list_friends",
        summary="List friends",
        tags=["Social - Friends"],
        responses={200: PublicUserSerializer(many=True)},
    )
    def get(self, request):
        friends = FriendshipService.list_friends(request.user)
        return Response(PublicUserSerializer(friends, many=True).data)


class FriendDetailView(APIView):
    """Remove a friend. Idempotent."""

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="remove_friend",
        summary="Remove a friend",
        tags=["Social - Friends"],
        responses={204: None},
    )
    def delete(self, request, user_id):
        result = FriendshipService.remove_friend(request.user, user_id)
        if not result.success:
            return service_error_response(result)
        return Response(status=status.HTTP_204_NO_CONTENT)
