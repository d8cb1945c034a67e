import logging

from rest_framework import status
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from desidratados.core import dependency_injection as di
from desidratados.core.entities import Usuario
from desidratados.core.exceptions import BaseErroCore

from .serializers import (
    CategoriaSerializer, ProdutoSerializer, CarrinhoSerializer, PedidoSerializer, AvaliacaoSerializer,
    ListaDesejosSerializer, AdicionarItemSerializer, AtualizarItemSerializer, MesclarCarrinhoSerializer,
    CodigoCupomSerializer, ValidarCupomSerializer, EntregaSerializer, VerificarPagamentoSerializer,
    ReembolsoSerializer, MotivoSerializer, FavoritoSerializer, MoverParaCarrinhoSerializer,
)

logger = logging.getLogger(__name__)


# ====================================================================
# VIEWS: Orquestram a requisição, a execução dos casos de uso e a resposta.
# ====================================================================

def resposta_erro(erro: BaseErroCore) -> Response:
    """Converte um erro da Core no corpo {codigo, mensagem, ...detalhes}."""
    return Response(
        {'codigo': erro.codigo, 'mensagem': erro.message, **erro.detalhes},
        status=erro.status_http,
    )


def usuario_da_requisicao(request) -> Usuario:
    user = request.user
    return Usuario(
        id=user.id,
        email=user.email,
        nome=user.get_full_name(),
        is_admin=user.is_staff,
    )


class CoreAPIView(APIView):
    """APIView que responde os erros da Core com o status HTTP de cada erro."""
    permission_classes = [IsAuthenticated]

    def handle_exception(self, exc):
        if isinstance(exc, BaseErroCore):
            return resposta_erro(exc)
        return super().handle_exception(exc)


# ====================================================================
# 1. CATÁLOGO (público)
# ====================================================================

class ProdutoListAPIView(CoreAPIView):
    permission_classes = [AllowAny]

    def get(self, request):
        produtos = di.get_listar_produtos_use_case().listar_produtos(
            busca=request.query_params.get('busca') or None,
            categoria_slug=request.query_params.get('categoria') or None,
        )
        return Response(ProdutoSerializer(produtos, many=True).data)


class ProdutoDetalheAPIView(CoreAPIView):
    """Aceita o ID ou o slug do produto."""
    permission_classes = [AllowAny]

    def get(self, request, identificador):
        produto = di.get_listar_produtos_use_case().detalhar(identificador)
        return Response(ProdutoSerializer(produto).data)


class CategoriaListAPIView(CoreAPIView):
    permission_classes = [AllowAny]

    def get(self, request):
        categorias = di.get_listar_produtos_use_case().listar_categorias()
        return Response(CategoriaSerializer(categorias, many=True).data)


# ====================================================================
# 2. CARRINHO
# ====================================================================

class CarrinhoAPIView(CoreAPIView):
    """Retorna o carrinho do usuário logado (criando um vazio se necessário)."""

    def get(self, request):
        carrinho = di.get_gerenciar_carrinho_use_case().obter_carrinho(request.user.id)
        return Response(CarrinhoSerializer(carrinho).data)


class AdicionarItemCarrinhoAPIView(CoreAPIView):

    def post(self, request):
        serializer = AdicionarItemSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        dados = serializer.validated_data

        carrinho = di.get_gerenciar_carrinho_use_case().adicionar_item(
            usuario_id=request.user.id,
            produto_id=dados['produto_id'],
            variante_id=dados['variante_id'],
            quantidade=dados['quantidade'],
        )
        return Response(CarrinhoSerializer(carrinho).data, status=status.HTTP_201_CREATED)


class AtualizarItemCarrinhoAPIView(CoreAPIView):

    def put(self, request):
        serializer = AtualizarItemSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        dados = serializer.validated_data

        carrinho = di.get_gerenciar_carrinho_use_case().atualizar_quantidade(
            request.user.id, dados['produto_id'], dados['variante_id'], dados['quantidade'],
        )
        return Response(CarrinhoSerializer(carrinho).data)


class RemoverItemCarrinhoAPIView(CoreAPIView):

    def delete(self, request, produto_id, variante_id):
        carrinho = di.get_gerenciar_carrinho_use_case().remover_item(request.user.id, produto_id, variante_id)
        return Response(CarrinhoSerializer(carrinho).data)


class AplicarCupomAPIView(CoreAPIView):

    def post(self, request):
        serializer = CodigoCupomSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        carrinho = di.get_gerenciar_carrinho_use_case().aplicar_cupom(
            request.user.id, serializer.validated_data['codigo'])
        return Response(CarrinhoSerializer(carrinho).data)


class RemoverCupomAPIView(CoreAPIView):

    def delete(self, request):
        carrinho = di.get_gerenciar_carrinho_use_case().remover_cupom(request.user.id)
        return Response(CarrinhoSerializer(carrinho).data)


class LimparCarrinhoAPIView(CoreAPIView):

    def delete(self, request):
        carrinho = di.get_gerenciar_carrinho_use_case().limpar(request.user.id)
        return Response(CarrinhoSerializer(carrinho).data)


class ValidarCarrinhoAPIView(CoreAPIView):
    """Confere o carrinho contra o catálogo atual e devolve os ajustes feitos."""

    def post(self, request):
        resultado = di.get_gerenciar_carrinho_use_case().validar_carrinho(request.user.id)
        return Response({
            'valido': resultado['valido'],
            'problemas': resultado['problemas'],
            'carrinho': CarrinhoSerializer(resultado['carrinho']).data,
        })


class MesclarCarrinhoAPIView(CoreAPIView):
    """Mescla o carrinho de visitante (guardado no navegador) no carrinho do usuário."""

    def post(self, request):
        serializer = MesclarCarrinhoSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        carrinho = di.get_gerenciar_carrinho_use_case().mesclar_carrinho(
            request.user.id, serializer.validated_data['itens'])
        return Response(CarrinhoSerializer(carrinho).data)


# ====================================================================
# 3. CUPONS (público)
# ====================================================================

class ValidarCupomAPIView(CoreAPIView):
    permission_classes = [AllowAny]

    def post(self, request):
        serializer = ValidarCupomSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        dados = serializer.validated_data

        usuario_id = request.user.id if request.user.is_authenticated else None
        resultado = di.get_validar_cupom_use_case().simular(dados['codigo'], dados['subtotal'], usuario_id)
        cupom = resultado['cupom']
        return Response({
            'valido': True,
            'codigo': cupom.codigo,
            'tipo_desconto': cupom.tipo_desconto,
            'valor_desconto': str(cupom.valor_desconto),
            'desconto': str(resultado['desconto']),
            'descricao': cupom.descricao,
        })


# ====================================================================
# 4. PAGAMENTO (Checkout com o gateway)
# ====================================================================

class ConfigPagamentoAPIView(CoreAPIView):
    permission_classes = [AllowAny]

    def get(self, request):
        parametros = di.get_parametros_loja()
        return Response({'chave_publica': parametros.chave_publica_gateway, 'moeda': parametros.moeda})


class CriarPedidoGatewayAPIView(CoreAPIView):
    """Abre o pedido no gateway para o total atual do carrinho."""

    def post(self, request):
        serializer = EntregaSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        resultado = di.get_checkout_use_case().criar_pedido_gateway(
            usuario_id=request.user.id,
            tipo_entrega=serializer.validated_data['tipo_entrega'],
            endereco=serializer.endereco_entity(),
        )
        return Response(resultado, status=status.HTTP_201_CREATED)


class VerificarPagamentoAPIView(CoreAPIView):
    """Verifica o pagamento assinado e converte o carrinho em pedido."""

    def post(self, request):
        serializer = VerificarPagamentoSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        dados = serializer.validated_data

        try:
            pedido = di.get_checkout_use_case().verificar_pagamento(
                usuario_id=request.user.id,
                gateway_pedido_id=dados['gateway_pedido_id'],
                gateway_pagamento_id=dados['gateway_pagamento_id'],
                assinatura=dados['assinatura'],
                carrinho_id=dados['carrinho_id'],
                tipo_entrega=dados['tipo_entrega'],
                endereco=serializer.endereco_entity(),
            )
        except BaseErroCore:
            raise
        except Exception:
            logger.exception(
                "Erro inesperado ao verificar pagamento (usuário=%s, carrinho=%s, pedido_gateway=%s, pagamento=%s)",
                request.user.id, dados['carrinho_id'], dados['gateway_pedido_id'], dados['gateway_pagamento_id'],
            )
            raise

        return Response({
            'mensagem': 'Pagamento verificado e pedido criado com sucesso!',
            'pedido_id': pedido.id,
            'numero_pedido': pedido.numero_pedido,
            'pedido': PedidoSerializer(pedido).data,
        }, status=status.HTTP_201_CREATED)


class ReembolsoAPIView(CoreAPIView):

    def post(self, request, pedido_id):
        serializer = ReembolsoSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        pedido = di.get_reembolso_use_case().executar(
            pedido_id,
            usuario_da_requisicao(request),
            valor=serializer.validated_data['valor'],
            motivo=serializer.validated_data['motivo'],
        )
        return Response({
            'mensagem': 'Reembolso processado com sucesso.',
            'reembolso_id': pedido.pagamento.reembolso_id,
            'pedido': PedidoSerializer(pedido).data,
        })


class WebhookPagamentoAPIView(CoreAPIView):
    """
    Recebe os eventos do gateway. A assinatura é calculada sobre o corpo
    bruto, por isso a view não usa `request.data`.
    """
    permission_classes = [AllowAny]
    authentication_classes = []

    def post(self, request):
        assinatura = request.headers.get('X-Razorpay-Signature')
        resultado = di.get_checkout_use_case().processar_webhook(request.body, assinatura)
        return Response(resultado)


# ====================================================================
# 5. PEDIDOS DO CLIENTE
# ====================================================================

class PedidoListAPIView(CoreAPIView):

    def get(self, request):
        pedidos = di.get_pedidos_cliente_use_case().listar(
            request.user.id, status=request.query_params.get('status') or None)
        return Response(PedidoSerializer(pedidos, many=True).data)


class PedidoDetalheAPIView(CoreAPIView):

    def get(self, request, pedido_id):
        pedido = di.get_pedidos_cliente_use_case().detalhar(pedido_id, usuario_da_requisicao(request))
        return Response(PedidoSerializer(pedido).data)


class PedidoPorNumeroAPIView(CoreAPIView):

    def get(self, request, numero_pedido):
        pedido = di.get_pedidos_cliente_use_case().buscar_por_numero(numero_pedido, usuario_da_requisicao(request))
        return Response(PedidoSerializer(pedido).data)


class CancelarPedidoAPIView(CoreAPIView):

    def post(self, request, pedido_id):
        serializer = MotivoSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        pedido = di.get_pedidos_cliente_use_case().cancelar(
            pedido_id, usuario_da_requisicao(request), serializer.validated_data['motivo'])
        return Response(PedidoSerializer(pedido).data)


class DevolverPedidoAPIView(CoreAPIView):

    def post(self, request, pedido_id):
        serializer = MotivoSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        pedido = di.get_pedidos_cliente_use_case().solicitar_devolucao(
            pedido_id, usuario_da_requisicao(request), serializer.validated_data['motivo'])
        return Response(PedidoSerializer(pedido).data)


# ====================================================================
# 6. AVALIAÇÕES
# ====================================================================

class AvaliacoesProdutoAPIView(CoreAPIView):
    """GET é público; POST exige login."""

    def get_permissions(self):
        if self.request.method == 'GET':
            return [AllowAny()]
        return [IsAuthenticated()]

    def get(self, request, produto_id):
        avaliacoes = di.get_avaliacoes_use_case().listar(produto_id)
        return Response(AvaliacaoSerializer(avaliacoes, many=True).data)

    def post(self, request, produto_id):
        serializer = AvaliacaoSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        dados = serializer.validated_data

        avaliacao = di.get_avaliacoes_use_case().criar(
            request.user.id, produto_id, dados['nota'], dados['titulo'], dados['comentario'])
        return Response(AvaliacaoSerializer(avaliacao).data, status=status.HTTP_201_CREATED)


class AvaliacaoDetalheAPIView(CoreAPIView):

    def put(self, request, avaliacao_id):
        serializer = AvaliacaoSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)

        avaliacao = di.get_avaliacoes_use_case().atualizar(
            avaliacao_id, usuario_da_requisicao(request), serializer.validated_data)
        return Response(AvaliacaoSerializer(avaliacao).data)

    def delete(self, request, avaliacao_id):
        di.get_avaliacoes_use_case().remover(avaliacao_id, usuario_da_requisicao(request))
        return Response(status=status.HTTP_204_NO_CONTENT)


# ====================================================================
# 7. LISTA DE DESEJOS
# ====================================================================

class ListaDesejosAPIView(CoreAPIView):

    def get(self, request):
        lista = di.get_lista_desejos_use_case().obter(request.user.id)
        return Response(ListaDesejosSerializer(lista).data)

    def post(self, request):
        serializer = FavoritoSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        lista = di.get_lista_desejos_use_case().adicionar(
            request.user.id, serializer.validated_data['produto_id'], serializer.validated_data['variante_id'])
        return Response(ListaDesejosSerializer(lista).data, status=status.HTTP_201_CREATED)

    def delete(self, request):
        lista = di.get_lista_desejos_use_case().limpar(request.user.id)
        return Response(ListaDesejosSerializer(lista).data)


class RemoverFavoritoAPIView(CoreAPIView):

    def delete(self, request, produto_id):
        lista = di.get_lista_desejos_use_case().remover(request.user.id, produto_id)
        return Response(ListaDesejosSerializer(lista).data)


class MoverFavoritoParaCarrinhoAPIView(CoreAPIView):

    def post(self, request):
        serializer = MoverParaCarrinhoSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        dados = serializer.validated_data

        carrinho = di.get_lista_desejos_use_case().mover_para_carrinho(
            request.user.id, dados['produto_id'], dados['variante_id'], dados['quantidade'])
        return Response(CarrinhoSerializer(carrinho).data)
