from django.db import models
from django.conf import settings
from django.core.validators import MinValueValidator, MaxValueValidator

from desidratados.catalogo.models import Produto


class Avaliacao(models.Model):
    """Avaliação de um produto por um cliente (uma por produto e usuário)."""
    produto = models.ForeignKey(Produto, on_delete=models.CASCADE, related_name='avaliacoes')
    usuario = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='avaliacoes')
    nota = models.PositiveSmallIntegerField(validators=[MinValueValidator(1), MaxValueValidator(5)])
    titulo = models.CharField(max_length=100, blank=True)
    comentario = models.TextField(max_length=1000, blank=True)
    compra_verificada = models.BooleanField(default=False)
    aprovada = models.BooleanField(default=True)
    data_criacao = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = 'Avaliação'
        verbose_name_plural = 'Avaliações'
        db_table = 'avaliacao_produto'
        unique_together = ('produto', 'usuario')
        ordering = ['-data_criacao']

    def __str__(self):
        return f"{self.produto} - {self.nota} estrela(s)"
