from django.apps import AppConfig

class AvaliacoesConfig(AppConfig):
    name = 'desidratados.avaliacoes'
    label = 'avaliacoes'
    verbose_name = 'Avaliações de Produtos'
    default_auto_field = 'django.db.models.BigAutoField'
