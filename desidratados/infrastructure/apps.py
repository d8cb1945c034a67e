from django.apps import AppConfig


class InfrastructureConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'desidratados.infrastructure'
    label = 'infrastructure'
    verbose_name = 'Infraestrutura (Usuários, Repositórios e Gateways)'
