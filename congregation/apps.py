from django.apps import AppConfig


class CongregationConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'congregation'
    verbose_name = 'Congregation'
