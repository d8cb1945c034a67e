from django.db import models
from django.conf import settings

from desidratados.catalogo.models import Produto


class ListaDesejos(models.Model):
    """Lista de desejos (uma por usuário)."""
    usuario = models.OneToOneField(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='lista_desejos')
    data_criacao = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = 'Lista de Desejos'
        verbose_name_plural = 'Listas de Desejos'
        db_table = 'favoritos_lista'

    def __str__(self):
        return f"Lista de {self.usuario}"


class ItemListaDesejos(models.Model):
    lista = models.ForeignKey(ListaDesejos, on_delete=models.CASCADE, related_name='itens')
    produto = models.ForeignKey(Produto, on_delete=models.CASCADE)
    variante_id = models.BigIntegerField(null=True, blank=True)
    adicionado_em = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = 'Item da Lista de Desejos'
        verbose_name_plural = 'Itens da Lista de Desejos'
        db_table = 'favoritos_item'
        unique_together = ('lista', 'produto')
        ordering = ['-adicionado_em', '-id']
