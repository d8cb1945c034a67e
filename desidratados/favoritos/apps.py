from django.apps import AppConfig

class FavoritosConfig(AppConfig):
    name = 'desidratados.favoritos'
    label = 'favoritos'
    verbose_name = 'Lista de Desejos'
    default_auto_field = 'django.db.models.BigAutoField'
