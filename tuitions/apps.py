from django.apps import AppConfig


class TuitionsConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'tuitions'
    verbose_name = 'Tuition Marketplace'
