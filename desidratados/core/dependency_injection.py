# desidratados/core/dependency_injection.py
"""
Módulo de Injeção de Dependência (DI).
Responsável por instanciar os Use Cases com suas dependências de Repositórios/Gateways
concretos da camada de Infraestrutura.
"""
from decimal import Decimal

from django.conf import settings

from desidratados.core.entities import ParametrosLoja
from desidratados.infrastructure.repositories import (
    ProdutoRepositoryDjango,
    CarrinhoRepositoryDjango,
    CupomRepositoryDjango,
    PedidoRepositoryDjango,
    ConciliacaoRepositoryDjango,
    UsuarioRepositoryDjango,
    AvaliacaoRepositoryDjango,
    ListaDesejosRepositoryDjango,
)
from desidratados.infrastructure.gateways import RazorpayGateway, PagamentoGatewayMock, EmailServiceGateway
from .use_cases import (
    ListarProdutosUseCase,
    ValidarCupomUseCase,
    GerenciarCuponsAdminUseCase,
    GerenciarCarrinhoUseCase,
    CheckoutUseCase,
    ReembolsoUseCase,
    GerenciarPedidoClienteUseCase,
    GerenciarPedidosAdminUseCase,
    AvaliacoesUseCase,
    ListaDesejosUseCase,
)

# O gateway mock guarda estado em memória, então é compartilhado pelo processo
_pagamento_gateway = None


def get_parametros_loja() -> ParametrosLoja:
    return ParametrosLoja(
        moeda=settings.MOEDA,
        taxa_imposto=Decimal(str(settings.TAXA_IMPOSTO)),
        limite_frete_gratis=Decimal(str(settings.LIMITE_FRETE_GRATIS)),
        custo_frete=Decimal(str(settings.CUSTO_FRETE)),
        dias_expiracao_carrinho=settings.DIAS_EXPIRACAO_CARRINHO,
        dias_janela_devolucao=settings.DIAS_JANELA_DEVOLUCAO,
        prefixo_numero_pedido=settings.PREFIXO_NUMERO_PEDIDO,
        chave_publica_gateway=settings.RAZORPAY_KEY_ID,
    )


def get_pagamento_gateway():
    global _pagamento_gateway
    if _pagamento_gateway is None:
        if settings.GATEWAY_PAGAMENTO == 'razorpay':
            _pagamento_gateway = RazorpayGateway(
                key_id=settings.RAZORPAY_KEY_ID,
                key_secret=settings.RAZORPAY_KEY_SECRET,
                webhook_secret=settings.RAZORPAY_WEBHOOK_SECRET,
            )
        else:
            _pagamento_gateway = PagamentoGatewayMock()
    return _pagamento_gateway


# Repositórios Concretos
produto_repo = ProdutoRepositoryDjango()
cupom_repo = CupomRepositoryDjango()
conciliacao_repo = ConciliacaoRepositoryDjango()
usuario_repo = UsuarioRepositoryDjango()
avaliacao_repo = AvaliacaoRepositoryDjango()
lista_desejos_repo = ListaDesejosRepositoryDjango()
pedido_repo = PedidoRepositoryDjango(produto_repo)
notificacao_service = EmailServiceGateway()


def _carrinho_repo() -> CarrinhoRepositoryDjango:
    return CarrinhoRepositoryDjango(get_parametros_loja())


# ====================================================================
# Use Cases de Catálogo e Cupons
# ====================================================================

def get_listar_produtos_use_case() -> ListarProdutosUseCase:
    return ListarProdutosUseCase(produto_repo)

def get_validar_cupom_use_case() -> ValidarCupomUseCase:
    return ValidarCupomUseCase(cupom_repo, pedido_repo, produto_repo)

def get_gerenciar_cupons_admin_use_case() -> GerenciarCuponsAdminUseCase:
    return GerenciarCuponsAdminUseCase(cupom_repo)


# ====================================================================
# Use Cases de Carrinho e Checkout
# ====================================================================

def get_gerenciar_carrinho_use_case() -> GerenciarCarrinhoUseCase:
    return GerenciarCarrinhoUseCase(_carrinho_repo(), produto_repo, get_validar_cupom_use_case())

def get_checkout_use_case() -> CheckoutUseCase:
    return CheckoutUseCase(
        carrinho_repo=_carrinho_repo(),
        produto_repo=produto_repo,
        pedido_repo=pedido_repo,
        conciliacao_repo=conciliacao_repo,
        usuario_repo=usuario_repo,
        pagamento_gateway=get_pagamento_gateway(),
        notificacao_service=notificacao_service,
        parametros=get_parametros_loja(),
    )

def get_reembolso_use_case() -> ReembolsoUseCase:
    return ReembolsoUseCase(pedido_repo, get_pagamento_gateway())


# ====================================================================
# Use Cases de Pedidos, Avaliações e Lista de Desejos
# ====================================================================

def get_pedidos_cliente_use_case() -> GerenciarPedidoClienteUseCase:
    return GerenciarPedidoClienteUseCase(pedido_repo, get_parametros_loja())

def get_pedidos_admin_use_case() -> GerenciarPedidosAdminUseCase:
    return GerenciarPedidosAdminUseCase(pedido_repo, usuario_repo, notificacao_service)

def get_avaliacoes_use_case() -> AvaliacoesUseCase:
    return AvaliacoesUseCase(avaliacao_repo, produto_repo, pedido_repo)

def get_lista_desejos_use_case() -> ListaDesejosUseCase:
    return ListaDesejosUseCase(lista_desejos_repo, produto_repo, get_gerenciar_carrinho_use_case())
