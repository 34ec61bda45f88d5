"""
Root URL configuration for the Letting Desk triage service.

Webhook and operator endpoints live under /api/; the dashboard UI is a
separate deployment.
"""
from django.urls import path, include
from django.http import JsonResponse


def health_check(request):
    return JsonResponse({"status": "healthy"})


urlpatterns = [
    path('api/', include('triage.urls')),
    path('health', health_check),
]
