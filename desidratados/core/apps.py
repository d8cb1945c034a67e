# desidratados/core/apps.py

from django.apps import AppConfig

class CoreConfig(AppConfig):
    # O nome completo do path da aplicação
    name = 'desidratados.core'
    label = 'core'
    verbose_name = 'Camada de Entidades e Lógica (Core)'

    # A camada Core não possui modelos; entidades e regras de negócio são puras.
    default_auto_field = 'django.db.models.BigAutoField'
