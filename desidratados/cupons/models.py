from django.db import models
from django.conf import settings


class Cupom(models.Model):
    """Cupom de desconto. O número de usos vem do registro em UsoCupom."""
    TIPO_CHOICES = [
        ('percentual', 'Percentual'),
        ('fixo', 'Valor Fixo'),
    ]

    codigo = models.CharField(max_length=30, unique=True, verbose_name="Código")
    descricao = models.CharField(max_length=255, blank=True)
    tipo_desconto = models.CharField(max_length=10, choices=TIPO_CHOICES, verbose_name="Tipo de Desconto")
    valor_desconto = models.DecimalField(max_digits=12, decimal_places=2, verbose_name="Valor do Desconto")
    compra_minima = models.DecimalField(max_digits=12, decimal_places=2, default=0, verbose_name="Compra Mínima")
    desconto_maximo = models.DecimalField(
        max_digits=12, decimal_places=2, null=True, blank=True, verbose_name="Desconto Máximo"
    )

    limite_uso = models.PositiveIntegerField(null=True, blank=True, verbose_name="Limite Total de Usos")
    limite_uso_por_usuario = models.PositiveIntegerField(default=1, verbose_name="Limite por Usuário")
    apenas_primeiro_pedido = models.BooleanField(default=False)
    ativo = models.BooleanField(default=True)

    data_inicio = models.DateTimeField(verbose_name="Válido a partir de")
    data_fim = models.DateTimeField(verbose_name="Válido até")

    produtos_aplicaveis = models.ManyToManyField('catalogo.Produto', blank=True, related_name='cupons')
    categorias_aplicaveis = models.ManyToManyField('catalogo.Categoria', blank=True, related_name='cupons')

    data_criacao = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = "Cupom"
        verbose_name_plural = "Cupons"
        db_table = 'cupom_desconto'
        ordering = ['-data_criacao']

    def __str__(self):
        return self.codigo

    def save(self, *args, **kwargs):
        self.codigo = self.codigo.strip().upper()
        super().save(*args, **kwargs)


class UsoCupom(models.Model):
    """Registro append-only de cada resgate do cupom."""
    cupom = models.ForeignKey(Cupom, on_delete=models.CASCADE, related_name='usos')
    usuario = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='usos_cupom')
    pedido = models.ForeignKey('pedidos.Pedido', on_delete=models.SET_NULL, null=True, blank=True)
    data_uso = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = "Uso de Cupom"
        verbose_name_plural = "Usos de Cupom"
        db_table = 'cupom_uso'
        ordering = ['data_uso']

    def __str__(self):
        return f"{self.cupom.codigo} - {self.usuario}"
