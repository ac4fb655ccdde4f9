from django.urls import path

from modules.core.views import health_check, liveness

urlpatterns = [
    path("health", health_check, name="health_check"),
    path("health/live", liveness, name="liveness"),
]
