from django.db import models
from django.conf import settings

from desidratados.catalogo.models import Produto


class Pedido(models.Model):
    """
    Modelo para pedidos de compra.

    Itens e totais são cópias do carrinho no momento do pagamento e não mudam
    depois que o pagamento é concluído.
    """
    STATUS_CHOICES = [
        ('pendente', 'Pendente'),
        ('confirmado', 'Confirmado'),
        ('processando', 'Em Processamento'),
        ('enviado', 'Enviado'),
        ('saiu_para_entrega', 'Saiu para Entrega'),
        ('entregue', 'Entregue'),
        ('cancelado', 'Cancelado'),
        ('reembolsado', 'Reembolsado'),
        ('devolucao_solicitada', 'Devolução Solicitada'),
        ('devolvido', 'Devolvido'),
    ]

    STATUS_PAGAMENTO_CHOICES = [
        ('pendente', 'Pendente'),
        ('processando', 'Processando'),
        ('concluido', 'Concluído'),
        ('falhou', 'Falhou'),
        ('reembolsado', 'Reembolsado'),
        ('parcialmente_reembolsado', 'Parcialmente Reembolsado'),
    ]

    TIPO_ENTREGA_CHOICES = [
        ('entrega_domicilio', 'Entrega a Domicílio'),
        ('retirada_loja', 'Retirada na Loja'),
    ]

    METODO_ENVIO_CHOICES = [
        ('padrao', 'Padrão'),
        ('expresso', 'Expresso'),
        ('retirada', 'Retirada'),
    ]

    numero_pedido = models.CharField(max_length=20, unique=True, verbose_name="Número do Pedido")
    usuario = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='pedidos',
        verbose_name="Cliente"
    )
    status = models.CharField(max_length=25, choices=STATUS_CHOICES, default='pendente', db_index=True)

    # Totais (snapshot do carrinho)
    subtotal = models.DecimalField(max_digits=12, decimal_places=2)
    desconto = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    frete = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    imposto = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    total = models.DecimalField(max_digits=12, decimal_places=2)
    cupom = models.JSONField(null=True, blank=True, verbose_name="Cupom (snapshot)")

    # Entrega
    endereco_entrega = models.JSONField(null=True, blank=True, help_text="Cópia do endereço no momento do pedido")
    tipo_entrega = models.CharField(max_length=20, choices=TIPO_ENTREGA_CHOICES, default='entrega_domicilio')
    metodo_envio = models.CharField(max_length=10, choices=METODO_ENVIO_CHOICES, default='padrao')

    # Pagamento
    pagamento_metodo = models.CharField(max_length=20, default='razorpay')
    pagamento_status = models.CharField(max_length=30, choices=STATUS_PAGAMENTO_CHOICES, default='pendente')
    gateway_pedido_id = models.CharField(max_length=100, blank=True, null=True, db_index=True)
    gateway_pagamento_id = models.CharField(max_length=100, blank=True, null=True, unique=True)
    gateway_assinatura = models.CharField(max_length=255, blank=True, null=True)
    reembolso_id = models.CharField(max_length=100, blank=True, null=True)
    pago_em = models.DateTimeField(null=True, blank=True)
    valor_reembolsado = models.DecimalField(max_digits=12, decimal_places=2, default=0)

    # Rastreamento
    transportadora = models.CharField(max_length=100, blank=True)
    codigo_rastreio = models.CharField(max_length=100, blank=True, verbose_name="Código de Rastreio")
    url_rastreio = models.URLField(max_length=500, blank=True)
    previsao_entrega = models.DateTimeField(null=True, blank=True)

    entregue_em = models.DateTimeField(null=True, blank=True)
    cancelado_em = models.DateTimeField(null=True, blank=True)
    motivo_cancelamento = models.TextField(blank=True)
    motivo_devolucao = models.TextField(blank=True)
    devolucao_solicitada_em = models.DateTimeField(null=True, blank=True)
    observacoes_internas = models.TextField(blank=True)

    data_criacao = models.DateTimeField(auto_now_add=True, verbose_name="Data do Pedido")
    data_atualizacao = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = 'Pedido'
        verbose_name_plural = 'Pedidos'
        ordering = ['-data_criacao']
        db_table = 'pedido_compra'

    def __str__(self):
        return f"Pedido {self.numero_pedido} - {self.usuario} - {self.status}"


class ItemPedido(models.Model):
    """
    Modelo para os itens contidos em um pedido.
    """
    pedido = models.ForeignKey(Pedido, on_delete=models.CASCADE, related_name='itens')

    # Referência fraca ao produto original
    produto = models.ForeignKey(
        Produto,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='itens_pedido',
    )
    variante_id = models.BigIntegerField()

    # Snapshots (cópia dos dados no momento da compra)
    nome = models.CharField(max_length=200)
    tamanho = models.CharField(max_length=50, blank=True)
    peso = models.DecimalField(max_digits=8, decimal_places=2, null=True, blank=True)
    unidade_peso = models.CharField(max_length=2, blank=True)
    imagem = models.URLField(max_length=500, blank=True, null=True)
    preco = models.DecimalField(max_digits=12, decimal_places=2, verbose_name="Preço Unitário na Compra")
    quantidade = models.PositiveIntegerField()
    total = models.DecimalField(max_digits=12, decimal_places=2)

    class Meta:
        verbose_name = 'Item do Pedido'
        verbose_name_plural = 'Itens do Pedido'
        db_table = 'pedido_item'

    def __str__(self):
        return f"{self.quantidade}x {self.nome} ({self.pedido.numero_pedido})"

    def save(self, *args, **kwargs):
        self.total = self.quantidade * self.preco
        super().save(*args, **kwargs)


class HistoricoStatusPedido(models.Model):
    """Histórico append-only de mudanças de status."""
    pedido = models.ForeignKey(Pedido, on_delete=models.CASCADE, related_name='historico')
    status = models.CharField(max_length=25)
    observacao = models.TextField(blank=True)
    atualizado_por = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='+'
    )
    data = models.DateTimeField()

    class Meta:
        verbose_name = 'Histórico de Status'
        verbose_name_plural = 'Histórico de Status'
        db_table = 'pedido_historico_status'
        ordering = ['data', 'id']

    def __str__(self):
        return f"{self.pedido.numero_pedido}: {self.status}"


class ConciliacaoPagamento(models.Model):
    """
    Diário de pagamentos verificados. Cada pagamento capturado ganha uma linha
    antes da conversão do carrinho; linhas que não chegam a 'convertido'
    são tratadas pelo comando `conciliar_pagamentos`.
    """
    STATUS_CHOICES = [
        ('capturado', 'Capturado'),
        ('convertido', 'Convertido em Pedido'),
        ('falhou', 'Falhou'),
    ]

    gateway_pagamento_id = models.CharField(max_length=100, unique=True)
    gateway_pedido_id = models.CharField(max_length=100, blank=True)
    carrinho_id = models.BigIntegerField(null=True, blank=True)
    usuario = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name='+')
    assinatura = models.CharField(max_length=255, blank=True)
    tipo_entrega = models.CharField(max_length=20, default='entrega_domicilio')
    endereco_entrega = models.JSONField(null=True, blank=True)
    status = models.CharField(max_length=12, choices=STATUS_CHOICES, default='capturado', db_index=True)
    motivo = models.TextField(blank=True)
    tentativas = models.PositiveIntegerField(default=0)
    pedido = models.ForeignKey(Pedido, on_delete=models.SET_NULL, null=True, blank=True, related_name='+')
    data_criacao = models.DateTimeField(auto_now_add=True)
    data_atualizacao = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = 'Conciliação de Pagamento'
        verbose_name_plural = 'Conciliações de Pagamento'
        db_table = 'pedido_conciliacao_pagamento'
        ordering = ['data_criacao']

    def __str__(self):
        return f"{self.gateway_pagamento_id} ({self.status})"
