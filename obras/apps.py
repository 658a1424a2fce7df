from django.apps import AppConfig


class ObrasConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'obras'
    verbose_name = 'Control de Obras Civiles'
