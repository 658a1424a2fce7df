from django.urls import path
from .views import api

urlpatterns = [
    # Sesión
    path("login/", api.api_login, name="api_login"),
    path("logout/", api.api_logout, name="api_logout"),

    # Paneles y finanzas
    path("dashboard/", api.api_dashboard, name="api_dashboard"),
    path("alertas/", api.api_alertas, name="api_alertas"),
    path("finanzas/excel/", api.api_finanzas_excel, name="api_finanzas_excel"),
    path("obras/<str:obra_id>/finanzas/", api.api_obra_finanzas, name="api_obra_finanzas"),

    # Nóminas
    path("nominas/", api.api_nominas, name="api_nominas"),
    path("nominas/<str:nomina_id>/excel/", api.api_nomina_excel, name="api_nomina_excel"),
    path("nominas/<str:nomina_id>/<str:accion>/", api.api_nomina_transicion, name="api_nomina_transicion"),

    # Documentos
    path("obras/<str:obra_id>/documentos/", api.api_documento_subir, name="api_documento_subir"),
]
