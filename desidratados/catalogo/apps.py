from django.apps import AppConfig


class CatalogoConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'desidratados.catalogo'
    label = 'catalogo'
    verbose_name = 'Catálogo de Produtos'
