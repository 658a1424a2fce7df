from django.contrib import admin
from django.urls import path, include

urlpatterns = [
    path("admin/", admin.site.urls),

    # API JSON de obras, nóminas y documentos
    path("api/", include("obras.urls")),
]
