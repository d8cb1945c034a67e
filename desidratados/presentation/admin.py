# Configuração da interface administrativa do Django para os modelos da Desidratados.

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin

from desidratados.infrastructure.models import Usuario
from desidratados.catalogo.models import Categoria, Produto, Variante
from desidratados.carrinho.models import Carrinho, ItemCarrinho
from desidratados.cupons.models import Cupom, UsoCupom
from desidratados.pedidos.models import Pedido, ItemPedido, HistoricoStatusPedido, ConciliacaoPagamento
from desidratados.avaliacoes.models import Avaliacao


# ====================================================================
# 1. ADMIN PERSONALIZADO PARA USUÁRIOS
# ====================================================================

@admin.register(Usuario)
class UsuarioAdmin(BaseUserAdmin):
    """Usuário com login por e-mail (o modelo não tem 'username')."""

    list_display = ('email', 'first_name', 'last_name', 'is_staff', 'is_active', 'telefone')
    fieldsets = (
        (None, {'fields': ('email', 'password')}),
        ('Informações Pessoais', {'fields': ('first_name', 'last_name', 'telefone')}),
        ('Permissões', {'fields': ('is_active', 'is_staff', 'is_superuser', 'groups', 'user_permissions')}),
        ('Datas', {'fields': ('last_login', 'date_joined')}),
    )
    add_fieldsets = (
        (None, {
            'classes': ('wide',),
            'fields': ('email', 'first_name', 'last_name', 'password1', 'password2'),
        }),
    )
    search_fields = ('email', 'first_name', 'last_name')
    ordering = ('email',)


# ====================================================================
# 2. CATÁLOGO
# ====================================================================

@admin.register(Categoria)
class CategoriaAdmin(admin.ModelAdmin):
    list_display = ('nome', 'slug', 'ativa', 'ordem')
    list_editable = ('ativa', 'ordem')
    search_fields = ('nome',)


class VarianteInline(admin.TabularInline):
    model = Variante
    extra = 1


@admin.register(Produto)
class ProdutoAdmin(admin.ModelAdmin):
    list_display = ('nome', 'categoria', 'preco_base', 'ativo', 'em_destaque', 'vendidos', 'avaliacao_media')
    list_filter = ('ativo', 'em_destaque', 'categoria')
    search_fields = ('nome', 'descricao')
    readonly_fields = ('slug', 'vendidos', 'avaliacao_media', 'avaliacao_quantidade')
    inlines = [VarianteInline]


# ====================================================================
# 3. CARRINHOS E CUPONS
# ====================================================================

class ItemCarrinhoInline(admin.TabularInline):
    model = ItemCarrinho
    extra = 0
    readonly_fields = ('produto', 'variante', 'quantidade', 'preco_unitario')
    can_delete = False


@admin.register(Carrinho)
class CarrinhoAdmin(admin.ModelAdmin):
    list_display = ('usuario', 'total', 'versao', 'expira_em', 'data_atualizacao')
    readonly_fields = ('usuario', 'cupom', 'subtotal', 'desconto', 'frete', 'imposto', 'total', 'versao')
    inlines = [ItemCarrinhoInline]


class UsoCupomInline(admin.TabularInline):
    model = UsoCupom
    extra = 0
    readonly_fields = ('usuario', 'pedido', 'data_uso')
    can_delete = False


@admin.register(Cupom)
class CupomAdmin(admin.ModelAdmin):
    list_display = ('codigo', 'tipo_desconto', 'valor_desconto', 'ativo', 'data_inicio', 'data_fim', 'limite_uso')
    list_filter = ('ativo', 'tipo_desconto')
    search_fields = ('codigo', 'descricao')
    filter_horizontal = ('produtos_aplicaveis', 'categorias_aplicaveis')
    inlines = [UsoCupomInline]


# ====================================================================
# 4. PEDIDOS
# ====================================================================

class ItemPedidoInline(admin.TabularInline):
    """Exibe os itens comprados dentro do detalhe do Pedido."""
    model = ItemPedido
    readonly_fields = ('nome', 'tamanho', 'preco', 'quantidade', 'total')
    exclude = ('produto', 'variante_id', 'imagem', 'peso', 'unidade_peso')
    extra = 0
    can_delete = False


class HistoricoStatusInline(admin.TabularInline):
    model = HistoricoStatusPedido
    readonly_fields = ('status', 'observacao', 'atualizado_por', 'data')
    extra = 0
    can_delete = False


@admin.register(Pedido)
class PedidoAdmin(admin.ModelAdmin):
    list_display = ('numero_pedido', 'usuario', 'data_criacao', 'total', 'status', 'pagamento_status')
    list_filter = ('status', 'pagamento_status', 'tipo_entrega', 'data_criacao')
    search_fields = ('numero_pedido', 'usuario__email', 'gateway_pagamento_id')
    date_hierarchy = 'data_criacao'
    inlines = [ItemPedidoInline, HistoricoStatusInline]
    readonly_fields = (
        'numero_pedido', 'usuario', 'subtotal', 'desconto', 'frete', 'imposto', 'total', 'cupom',
        'endereco_entrega', 'tipo_entrega', 'pagamento_metodo', 'pagamento_status', 'gateway_pedido_id',
        'gateway_pagamento_id', 'gateway_assinatura', 'reembolso_id', 'pago_em', 'valor_reembolsado',
    )

    def has_add_permission(self, request):
        """Pedidos nascem apenas do checkout."""
        return False


@admin.register(ConciliacaoPagamento)
class ConciliacaoPagamentoAdmin(admin.ModelAdmin):
    list_display = ('gateway_pagamento_id', 'usuario', 'status', 'tentativas', 'pedido', 'data_criacao')
    list_filter = ('status',)
    search_fields = ('gateway_pagamento_id', 'gateway_pedido_id', 'usuario__email')
    readonly_fields = [f.name for f in ConciliacaoPagamento._meta.fields]

    def has_add_permission(self, request):
        return False


# ====================================================================
# 5. AVALIAÇÕES
# ====================================================================

@admin.register(Avaliacao)
class AvaliacaoAdmin(admin.ModelAdmin):
    list_display = ('produto', 'usuario', 'nota', 'compra_verificada', 'aprovada', 'data_criacao')
    list_filter = ('aprovada', 'compra_verificada', 'nota')
    list_editable = ('aprovada',)
    search_fields = ('produto__nome', 'usuario__email', 'titulo')
