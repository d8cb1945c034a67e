"""
Rotas da API REST da loja (montadas em /api/).
"""
from django.urls import path
from . import views, views_admin


urlpatterns = [
    # ====================================================================
    # 1. CATÁLOGO
    # ====================================================================
    path('produtos/', views.ProdutoListAPIView.as_view(), name='api_produtos'),
    path('produtos/<int:produto_id>/avaliacoes/', views.AvaliacoesProdutoAPIView.as_view(), name='api_avaliacoes_produto'),
    path('produtos/<str:identificador>/', views.ProdutoDetalheAPIView.as_view(), name='api_produto_detalhe'),
    path('categorias/', views.CategoriaListAPIView.as_view(), name='api_categorias'),
    path('avaliacoes/<int:avaliacao_id>/', views.AvaliacaoDetalheAPIView.as_view(), name='api_avaliacao_detalhe'),

    # ====================================================================
    # 2. CARRINHO
    # ====================================================================
    path('carrinho/', views.CarrinhoAPIView.as_view(), name='api_carrinho'),
    path('carrinho/adicionar/', views.AdicionarItemCarrinhoAPIView.as_view(), name='api_carrinho_adicionar'),
    path('carrinho/atualizar/', views.AtualizarItemCarrinhoAPIView.as_view(), name='api_carrinho_atualizar'),
    path('carrinho/remover/<int:produto_id>/<int:variante_id>/', views.RemoverItemCarrinhoAPIView.as_view(),
         name='api_carrinho_remover'),
    path('carrinho/cupom/aplicar/', views.AplicarCupomAPIView.as_view(), name='api_carrinho_aplicar_cupom'),
    path('carrinho/cupom/remover/', views.RemoverCupomAPIView.as_view(), name='api_carrinho_remover_cupom'),
    path('carrinho/limpar/', views.LimparCarrinhoAPIView.as_view(), name='api_carrinho_limpar'),
    path('carrinho/validar/', views.ValidarCarrinhoAPIView.as_view(), name='api_carrinho_validar'),
    path('carrinho/mesclar/', views.MesclarCarrinhoAPIView.as_view(), name='api_carrinho_mesclar'),

    # ====================================================================
    # 3. CUPONS E PAGAMENTO
    # ====================================================================
    path('cupons/validar/', views.ValidarCupomAPIView.as_view(), name='api_cupom_validar'),
    path('pagamento/config/', views.ConfigPagamentoAPIView.as_view(), name='api_pagamento_config'),
    path('pagamento/criar-pedido/', views.CriarPedidoGatewayAPIView.as_view(), name='api_pagamento_criar_pedido'),
    path('pagamento/verificar/', views.VerificarPagamentoAPIView.as_view(), name='api_pagamento_verificar'),
    path('pagamento/reembolso/<int:pedido_id>/', views.ReembolsoAPIView.as_view(), name='api_pagamento_reembolso'),
    # Webhook do gateway (rota externa, sem autenticação JWT)
    path('pagamento/webhook/', views.WebhookPagamentoAPIView.as_view(), name='api_pagamento_webhook'),

    # ====================================================================
    # 4. PEDIDOS E LISTA DE DESEJOS (ÁREA DO CLIENTE)
    # ====================================================================
    path('pedidos/', views.PedidoListAPIView.as_view(), name='api_pedidos'),
    path('pedidos/numero/<str:numero_pedido>/', views.PedidoPorNumeroAPIView.as_view(), name='api_pedido_por_numero'),
    path('pedidos/<int:pedido_id>/', views.PedidoDetalheAPIView.as_view(), name='api_pedido_detalhe'),
    path('pedidos/<int:pedido_id>/cancelar/', views.CancelarPedidoAPIView.as_view(), name='api_pedido_cancelar'),
    path('pedidos/<int:pedido_id>/devolver/', views.DevolverPedidoAPIView.as_view(), name='api_pedido_devolver'),

    path('favoritos/', views.ListaDesejosAPIView.as_view(), name='api_favoritos'),
    path('favoritos/mover/', views.MoverFavoritoParaCarrinhoAPIView.as_view(), name='api_favoritos_mover'),
    path('favoritos/<int:produto_id>/', views.RemoverFavoritoAPIView.as_view(), name='api_favoritos_remover'),

    # ====================================================================
    # 5. ROTAS ADMINISTRATIVAS
    # ====================================================================
    path('admin/pedidos/', views_admin.PedidosAdminListAPIView.as_view(), name='api_admin_pedidos'),
    path('admin/pedidos/<int:pedido_id>/', views_admin.PedidoAdminDetalheAPIView.as_view(),
         name='api_admin_pedido_detalhe'),
    path('admin/pedidos/<int:pedido_id>/status/', views_admin.AtualizarStatusPedidoAPIView.as_view(),
         name='api_admin_pedido_status'),
    path('admin/pedidos/<int:pedido_id>/rastreamento/', views_admin.AtualizarRastreamentoAPIView.as_view(),
         name='api_admin_pedido_rastreamento'),
    path('admin/pedidos/<int:pedido_id>/observacoes/', views_admin.AtualizarObservacoesAPIView.as_view(),
         name='api_admin_pedido_observacoes'),

    path('admin/cupons/', views_admin.CuponsAdminAPIView.as_view(), name='api_admin_cupons'),
    path('admin/cupons/lote/', views_admin.CuponsLoteAPIView.as_view(), name='api_admin_cupons_lote'),
    path('admin/cupons/<int:cupom_id>/', views_admin.CupomAdminDetalheAPIView.as_view(), name='api_admin_cupom_detalhe'),
    path('admin/cupons/<int:cupom_id>/alternar/', views_admin.AlternarCupomAPIView.as_view(),
         name='api_admin_cupom_alternar'),

    path('admin/avaliacoes/pendentes/', views_admin.AvaliacoesPendentesAPIView.as_view(),
         name='api_admin_avaliacoes_pendentes'),
    path('admin/avaliacoes/<int:avaliacao_id>/aprovar/', views_admin.AprovarAvaliacaoAPIView.as_view(),
         name='api_admin_avaliacao_aprovar'),
]
