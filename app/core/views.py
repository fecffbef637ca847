"""
Infrastructure endpoints.
"""

from django.conf import settings
from django.core.cache import cache
from django.db import connection
from django.http import JsonResponse


def health_check(request):
    """
    Liveness/readiness probe.

    The store is the only hard dependency: checkout and webhook handling
    cannot make progress without it, so an unreachable database answers 503.
    Cache and gateway credentials are reported but never fail the probe;
    missing credentials surface per request as a ConfigurationError.

    Response:
        {
            "status": "healthy" | "unhealthy",
            "database": "connected" | "disconnected",
            "cache": "connected" | "disconnected",
            "gateway": "configured" | "not_configured"
        }
    """
    health_status = {
        "status": "healthy",
        "database": "unknown",
        "cache": "unknown",
        "gateway": "configured",
    }
    is_healthy = True

    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
            cursor.fetchone()
        health_status["database"] = "connected"
    except Exception:
        health_status["database"] = "disconnected"
        health_status["status"] = "unhealthy"
        is_healthy = False

    try:
        cache.set("health_check", "ok", timeout=1)
        health_status["cache"] = (
            "connected" if cache.get("health_check") == "ok" else "disconnected"
        )
    except Exception:
        health_status["cache"] = "disconnected"

    if not (settings.STRIPE_SECRET_KEY and settings.STRIPE_WEBHOOK_SECRET):
        health_status["gateway"] = "not_configured"

    return JsonResponse(health_status, status=200 if is_healthy else 503)
