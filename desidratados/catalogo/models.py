from django.db import models
from django.db.models import Sum
from django.utils.text import slugify

# ====================================================================
# 1. Categoria
# ====================================================================

class Categoria(models.Model):
    """Modelo para agrupar produtos (Ex: Frutas, Legumes, Misturas)."""
    nome = models.CharField(max_length=100, unique=True, verbose_name="Nome da Categoria")
    slug = models.SlugField(max_length=100, unique=True, editable=False)
    descricao = models.TextField(blank=True, verbose_name="Descrição")
    ativa = models.BooleanField(default=True, verbose_name="Ativa")
    ordem = models.PositiveIntegerField(default=0, verbose_name="Ordem de Exibição")

    class Meta:
        verbose_name = "Categoria"
        verbose_name_plural = "Categorias"
        db_table = 'catalogo_categoria'
        ordering = ['ordem', 'nome']

    def __str__(self):
        return self.nome

    def save(self, *args, **kwargs):
        if not self.slug:
            self.slug = slugify(self.nome)
        super().save(*args, **kwargs)

# ====================================================================
# 2. Produto
# ====================================================================

class Produto(models.Model):
    """Modelo para representar um produto no catálogo. O estoque fica nas variantes."""

    categoria = models.ForeignKey(Categoria, on_delete=models.PROTECT, related_name='produtos')

    nome = models.CharField(max_length=200, verbose_name="Nome do Produto")
    slug = models.SlugField(max_length=255, unique=True, editable=False)
    descricao = models.TextField(verbose_name="Descrição Detalhada")
    descricao_curta = models.CharField(max_length=200, blank=True, verbose_name="Descrição Curta")

    preco_base = models.DecimalField(max_digits=12, decimal_places=2, verbose_name="Preço Base")
    preco_comparacao = models.DecimalField(
        max_digits=12, decimal_places=2, null=True, blank=True, verbose_name="Preço de Comparação"
    )
    ativo = models.BooleanField(default=True)
    em_destaque = models.BooleanField(default=False)
    vendidos = models.IntegerField(default=0, verbose_name="Quantidade Vendida")
    limite_estoque_baixo = models.PositiveIntegerField(default=10)

    avaliacao_media = models.DecimalField(max_digits=2, decimal_places=1, default=0)
    avaliacao_quantidade = models.PositiveIntegerField(default=0)

    imagem = models.URLField(max_length=500, blank=True, null=True, verbose_name="URL da Imagem")

    data_criacao = models.DateTimeField(auto_now_add=True)
    data_atualizacao = models.DateTimeField(auto_now=True, null=True)

    class Meta:
        verbose_name = "Produto"
        verbose_name_plural = "Produtos"
        ordering = ['nome']
        db_table = 'catalogo_produto'

    def __str__(self):
        return self.nome

    def save(self, *args, **kwargs):
        if not self.slug:
            self.slug = slugify(f"{self.categoria.nome}-{self.nome}")
        super().save(*args, **kwargs)

    @property
    def estoque_total(self) -> int:
        return self.variantes.aggregate(total=Sum('estoque'))['total'] or 0

# ====================================================================
# 3. Variante (tamanho/embalagem)
# ====================================================================

class Variante(models.Model):
    """Tamanho vendável de um produto, com preço e estoque próprios."""
    UNIDADE_CHOICES = [
        ('g', 'Gramas'),
        ('kg', 'Quilos'),
    ]

    produto = models.ForeignKey(Produto, on_delete=models.CASCADE, related_name='variantes')
    tamanho = models.CharField(max_length=50, verbose_name="Tamanho")
    peso = models.DecimalField(max_digits=8, decimal_places=2, verbose_name="Peso")
    unidade_peso = models.CharField(max_length=2, choices=UNIDADE_CHOICES, default='g')
    preco = models.DecimalField(max_digits=12, decimal_places=2, verbose_name="Preço")
    estoque = models.PositiveIntegerField(default=0, verbose_name="Estoque Atual")
    sku = models.CharField(max_length=64, unique=True, null=True, blank=True)
    disponivel = models.BooleanField(default=True)

    class Meta:
        verbose_name = "Variante"
        verbose_name_plural = "Variantes"
        db_table = 'catalogo_variante'
        ordering = ['produto', 'peso']

    def __str__(self):
        return f"{self.produto.nome} - {self.tamanho}"
