# desidratados/presentation/views_admin.py
"""
Views da API administrativa (apenas usuários staff).
"""
from django.utils.dateparse import parse_datetime
from rest_framework import status
from rest_framework.permissions import IsAdminUser
from rest_framework.response import Response

from desidratados.core import dependency_injection as di

from .views import CoreAPIView
from .serializers import (
    PedidoAdminSerializer, CupomSerializer, CupomLoteSerializer, AvaliacaoSerializer,
    AtualizarStatusSerializer, RastreamentoSerializer, ObservacoesSerializer,
)


class AdminAPIView(CoreAPIView):
    permission_classes = [IsAdminUser]


# ====================================================================
# GERENCIAMENTO DE PEDIDOS
# ====================================================================

class PedidosAdminListAPIView(AdminAPIView):
    """Lista todos os pedidos com filtros de status, pagamento, busca e período."""

    def get(self, request):
        params = request.query_params
        pedidos = di.get_pedidos_admin_use_case().listar(
            status=params.get('status') or None,
            status_pagamento=params.get('status_pagamento') or None,
            busca=params.get('busca') or None,
            data_inicio=parse_datetime(params['data_inicio']) if params.get('data_inicio') else None,
            data_fim=parse_datetime(params['data_fim']) if params.get('data_fim') else None,
        )
        return Response(PedidoAdminSerializer(pedidos, many=True).data)


class PedidoAdminDetalheAPIView(AdminAPIView):

    def get(self, request, pedido_id):
        pedido = di.get_pedidos_admin_use_case().detalhar(pedido_id)
        return Response(PedidoAdminSerializer(pedido).data)


class AtualizarStatusPedidoAPIView(AdminAPIView):

    def put(self, request, pedido_id):
        serializer = AtualizarStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        pedido = di.get_pedidos_admin_use_case().atualizar_status(
            pedido_id,
            serializer.validated_data['status'],
            serializer.validated_data['observacao'],
            admin_id=request.user.id,
        )
        return Response(PedidoAdminSerializer(pedido).data)


class AtualizarRastreamentoAPIView(AdminAPIView):

    def put(self, request, pedido_id):
        serializer = RastreamentoSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)

        pedido = di.get_pedidos_admin_use_case().atualizar_rastreamento(pedido_id, serializer.validated_data)
        return Response(PedidoAdminSerializer(pedido).data)


class AtualizarObservacoesAPIView(AdminAPIView):

    def put(self, request, pedido_id):
        serializer = ObservacoesSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        pedido = di.get_pedidos_admin_use_case().atualizar_observacoes(
            pedido_id, serializer.validated_data['observacoes'])
        return Response(PedidoAdminSerializer(pedido).data)


# ====================================================================
# GERENCIAMENTO DE CUPONS
# ====================================================================

class CuponsAdminAPIView(AdminAPIView):

    def get(self, request):
        ativo = request.query_params.get('ativo')
        cupons = di.get_gerenciar_cupons_admin_use_case().listar(
            ativo={'true': True, 'false': False}.get((ativo or '').lower()),
            busca=request.query_params.get('busca') or None,
        )
        return Response(CupomSerializer(cupons, many=True).data)

    def post(self, request):
        serializer = CupomSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        cupom = di.get_gerenciar_cupons_admin_use_case().criar(serializer.validated_data)
        return Response(CupomSerializer(cupom).data, status=status.HTTP_201_CREATED)


class CupomAdminDetalheAPIView(AdminAPIView):

    def get(self, request, cupom_id):
        cupom = di.get_gerenciar_cupons_admin_use_case().detalhar(cupom_id)
        return Response(CupomSerializer(cupom).data)

    def put(self, request, cupom_id):
        serializer = CupomSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)

        cupom = di.get_gerenciar_cupons_admin_use_case().atualizar(cupom_id, serializer.validated_data)
        return Response(CupomSerializer(cupom).data)

    def delete(self, request, cupom_id):
        di.get_gerenciar_cupons_admin_use_case().deletar(cupom_id)
        return Response(status=status.HTTP_204_NO_CONTENT)


class AlternarCupomAPIView(AdminAPIView):

    def post(self, request, cupom_id):
        cupom = di.get_gerenciar_cupons_admin_use_case().alternar_ativo(cupom_id)
        return Response(CupomSerializer(cupom).data)


class CuponsLoteAPIView(AdminAPIView):
    """Gera vários cupons com os mesmos termos e códigos aleatórios."""

    def post(self, request):
        serializer = CupomLoteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        dados = serializer.validated_data

        cupons = di.get_gerenciar_cupons_admin_use_case().criar_em_lote(
            dados['prefixo'], dados['quantidade'], dados['dados'])
        return Response(CupomSerializer(cupons, many=True).data, status=status.HTTP_201_CREATED)


# ====================================================================
# MODERAÇÃO DE AVALIAÇÕES
# ====================================================================

class AvaliacoesPendentesAPIView(AdminAPIView):

    def get(self, request):
        avaliacoes = di.get_avaliacoes_use_case().listar_pendentes()
        return Response(AvaliacaoSerializer(avaliacoes, many=True).data)


class AprovarAvaliacaoAPIView(AdminAPIView):

    def post(self, request, avaliacao_id):
        avaliacao = di.get_avaliacoes_use_case().aprovar(avaliacao_id)
        return Response(AvaliacaoSerializer(avaliacao).data)
