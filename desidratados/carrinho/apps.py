from django.apps import AppConfig

class CarrinhoConfig(AppConfig):
    name = 'desidratados.carrinho'
    label = 'carrinho'
    verbose_name = 'Carrinho de Compras'
    default_auto_field = 'django.db.models.BigAutoField'
