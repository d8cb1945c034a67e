from django.apps import AppConfig

class CuponsConfig(AppConfig):
    name = 'desidratados.cupons'
    label = 'cupons'
    verbose_name = 'Cupons de Desconto'
    default_auto_field = 'django.db.models.BigAutoField'
