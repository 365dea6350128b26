"""
Views for the authenticated user's profile and the user directory.

URL: /api/v1/auth/
    me/      GET, PATCH  - Current user's profile
    users/   GET         - User directory search (?search=<text>)
"""

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from authentication.serializers import (
    ProfileUpdateSerializer,
    PublicUserSerializer,
    UserSerializer,
)
from authentication.services import IdentityService
from core.views import service_error_response


class MeView(APIView):
    """
    API view for the current user's profile.

    GET: Retrieve the current user
    PATCH: Update display_name and/or photo_url
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="get_me",
        summary="Get current user",
        tags=["Auth - Profile"],
        responses={200: UserSerializer},
    )
    def get(self, request):
        return Response(UserSerializer(request.user).data)

    @extend_schema(
        operation_id="update_me",
        summary="Update profile",
        tags=["Auth - Profile"],
        request=ProfileUpdateSerializer,
        responses={200: UserSerializer},
    )
    def patch(self, request):
        serializer = ProfileUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = IdentityService.update_profile(
            user=request.user,
            display_name=serializer.validated_data.get("display_name"),
            photo_url=serializer.validated_data.get("photo_url"),
        )
        if not result.success:
            return service_error_response(result)

        return Response(UserSerializer(result.data).data)


class UserDirectoryView(APIView):
    """
    Search other users by display name or email.

    The current user is excluded from results.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="search_users",
        summary="Search users",
        tags=["Auth - Users"],
        parameters=[
            OpenApiParameter(
                name="search",
                type=OpenApiTypes.STR,
                location=OpenApiParameter.QUERY,
                description="Display name or email fragment (min 2 characters)",
            ),
        ],
        responses={200: PublicUserSerializer(many=True)},
    )
    def get(self, request):
        users = IdentityService.search_users(
            request.query_params.get("search", ""),
            exclude=request.user,
        )
        return Response(PublicUserSerializer(users, many=True).data)
