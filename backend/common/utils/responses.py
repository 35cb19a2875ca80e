"""Response helpers shared by the API views."""

from rest_framework.response import Response

from services.exceptions import RideServiceError


def error_response(exc: RideServiceError) -> Response:
    """Translate a ride service error into the standard error body."""
    return Response(
        {
            "success": False,
            "error": exc.code,
            "message": exc.message or str(exc),
        },
        status=exc.status_code,
    )
