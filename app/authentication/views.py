"""
DRF views for authentication app.

Token issuance is handled by rest_framework_simplejwt's views (see
urls.py). This module adds the endpoint clients use to learn which role
the token acts in.

Endpoints:
    GET /api/v1/auth/me/ - Current user
"""

from drf_spectacular.utils import extend_schema
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from authentication.serializers import UserSerializer


class CurrentUserView(APIView):
    """
    API view for the authenticated user.

    URL: /api/v1/auth/me/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Get current user",
        tags=["Auth"],
        responses={200: UserSerializer},
    )
    def get(self, request):
        return Response(UserSerializer(request.user).data)
