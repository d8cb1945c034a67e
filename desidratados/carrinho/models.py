# Define os modelos para o domínio de Carrinho.

from django.db import models
from django.conf import settings
from django.core.validators import MinValueValidator, MaxValueValidator

from desidratados.catalogo.models import Produto, Variante


class Carrinho(models.Model):
    """
    Modelo de Carrinho de Compras (um por usuário).

    Os totais são gravados já calculados pelo repositório; `versao` é o
    contador do controle otimista de concorrência.
    """
    usuario = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='carrinho',
    )
    cupom = models.JSONField(null=True, blank=True, verbose_name="Cupom Aplicado (snapshot)")

    subtotal = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    desconto = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    frete = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    imposto = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    total = models.DecimalField(max_digits=12, decimal_places=2, default=0)

    versao = models.PositiveIntegerField(default=0)
    expira_em = models.DateTimeField(db_index=True)
    data_criacao = models.DateTimeField(auto_now_add=True)
    data_atualizacao = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "Carrinho"
        verbose_name_plural = "Carrinhos"
        db_table = 'carrinho_compras'

    def __str__(self):
        return f"Carrinho #{self.pk} ({self.usuario})"


class ItemCarrinho(models.Model):
    """Modelo para os itens dentro do carrinho, com preço capturado ao adicionar."""
    carrinho = models.ForeignKey(Carrinho, on_delete=models.CASCADE, related_name='itens')
    produto = models.ForeignKey(Produto, on_delete=models.CASCADE)
    variante = models.ForeignKey(Variante, on_delete=models.CASCADE)
    quantidade = models.PositiveIntegerField(
        default=1, validators=[MinValueValidator(1), MaxValueValidator(99)]
    )
    preco_unitario = models.DecimalField(max_digits=12, decimal_places=2)

    # Snapshot para exibição
    nome = models.CharField(max_length=200)
    tamanho = models.CharField(max_length=50, blank=True)
    peso = models.DecimalField(max_digits=8, decimal_places=2, null=True, blank=True)
    unidade_peso = models.CharField(max_length=2, blank=True)
    imagem = models.URLField(max_length=500, blank=True, null=True)
    data_adicao = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = "Item do Carrinho"
        verbose_name_plural = "Itens do Carrinho"
        unique_together = ('carrinho', 'produto', 'variante')
        ordering = ['data_adicao', 'id']
        db_table = 'carrinho_item'

    def __str__(self):
        return f"{self.quantidade}x {self.nome} ({self.tamanho})"
