from django.contrib import admin
from .models import ColeccionPersistida


@admin.register(ColeccionPersistida)
class ColeccionPersistidaAdmin(admin.ModelAdmin):
    search_fields = ("nombre",)
    list_display = ("nombre", "creado_en", "actualizado_en")
    readonly_fields = ("creado_en", "actualizado_en")
