from rest_framework import serializers

from desidratados.core.entities import (
    EnderecoEntrega, QUANTIDADE_MAXIMA_ITEM, TIPOS_ENTREGA, ENTREGA_DOMICILIO, STATUS_PEDIDO,
    TIPO_PERCENTUAL, TIPO_FIXO,
)


def _dinheiro(**kwargs):
    return serializers.DecimalField(max_digits=12, decimal_places=2, **kwargs)


# ====================================================================
# SERIALIZERS DE SAÍDA (representam as Entidades do Core)
# ====================================================================

class CategoriaSerializer(serializers.Serializer):
    id = serializers.IntegerField()
    nome = serializers.CharField()
    slug = serializers.CharField()
    descricao = serializers.CharField()


class VarianteSerializer(serializers.Serializer):
    id = serializers.IntegerField()
    tamanho = serializers.CharField()
    peso = serializers.DecimalField(max_digits=8, decimal_places=2)
    unidade_peso = serializers.CharField()
    preco = _dinheiro()
    estoque = serializers.IntegerField()
    sku = serializers.CharField()
    disponivel = serializers.BooleanField()


class ProdutoSerializer(serializers.Serializer):
    id = serializers.IntegerField()
    nome = serializers.CharField()
    slug = serializers.CharField()
    descricao = serializers.CharField()
    descricao_curta = serializers.CharField()
    categoria_id = serializers.IntegerField()
    preco_base = _dinheiro()
    preco_comparacao = _dinheiro(allow_null=True)
    percentual_desconto = serializers.IntegerField()
    em_destaque = serializers.BooleanField()
    imagem = serializers.CharField(allow_null=True)
    estoque_total = serializers.IntegerField()
    status_estoque = serializers.CharField()
    avaliacao_media = serializers.DecimalField(max_digits=2, decimal_places=1)
    avaliacao_quantidade = serializers.IntegerField()
    variantes = VarianteSerializer(many=True)


class CupomAplicadoSerializer(serializers.Serializer):
    codigo = serializers.CharField()
    tipo = serializers.CharField()
    valor = _dinheiro()
    desconto_maximo = _dinheiro(allow_null=True)


class ItemCarrinhoSerializer(serializers.Serializer):
    produto_id = serializers.IntegerField()
    variante_id = serializers.IntegerField()
    nome = serializers.CharField()
    tamanho = serializers.CharField()
    peso = serializers.DecimalField(max_digits=8, decimal_places=2, allow_null=True)
    unidade_peso = serializers.CharField()
    imagem = serializers.CharField(allow_null=True)
    quantidade = serializers.IntegerField()
    preco_unitario = _dinheiro()
    subtotal = _dinheiro()


class CarrinhoSerializer(serializers.Serializer):
    """Carrinho com itens, cupom aplicado e os cinco totais."""
    id = serializers.IntegerField()
    itens = ItemCarrinhoSerializer(many=True)
    cupom = CupomAplicadoSerializer(allow_null=True)
    quantidade_itens = serializers.IntegerField()
    subtotal = _dinheiro()
    desconto = _dinheiro()
    frete = _dinheiro()
    imposto = _dinheiro()
    total = _dinheiro()
    versao = serializers.IntegerField()
    expira_em = serializers.DateTimeField()


class CupomSerializer(serializers.Serializer):
    id = serializers.IntegerField(read_only=True)
    codigo = serializers.CharField(max_length=30)
    descricao = serializers.CharField(required=False, allow_blank=True, default='')
    tipo_desconto = serializers.ChoiceField(choices=[TIPO_PERCENTUAL, TIPO_FIXO])
    valor_desconto = _dinheiro(min_value=0)
    compra_minima = _dinheiro(required=False, min_value=0, default=0)
    desconto_maximo = _dinheiro(required=False, allow_null=True, default=None)
    limite_uso = serializers.IntegerField(required=False, allow_null=True, min_value=1, default=None)
    limite_uso_por_usuario = serializers.IntegerField(required=False, min_value=1, default=1)
    apenas_primeiro_pedido = serializers.BooleanField(required=False, default=False)
    ativo = serializers.BooleanField(required=False, default=True)
    data_inicio = serializers.DateTimeField()
    data_fim = serializers.DateTimeField()
    produtos_aplicaveis = serializers.ListField(child=serializers.IntegerField(), required=False, default=list)
    categorias_aplicaveis = serializers.ListField(child=serializers.IntegerField(), required=False, default=list)
    quantidade_usos = serializers.IntegerField(read_only=True)


class ItemPedidoSerializer(serializers.Serializer):
    produto_id = serializers.IntegerField(allow_null=True)
    variante_id = serializers.IntegerField()
    nome = serializers.CharField()
    tamanho = serializers.CharField()
    peso = serializers.DecimalField(max_digits=8, decimal_places=2, allow_null=True)
    unidade_peso = serializers.CharField()
    imagem = serializers.CharField(allow_null=True)
    preco = _dinheiro()
    quantidade = serializers.IntegerField()
    total = _dinheiro()


class EnderecoEntregaSerializer(serializers.Serializer):
    nome = serializers.CharField(max_length=100)
    sobrenome = serializers.CharField(max_length=100, required=False, allow_blank=True, default='')
    rua = serializers.CharField(max_length=255)
    complemento = serializers.CharField(max_length=255, required=False, allow_blank=True, default='')
    cidade = serializers.CharField(max_length=100)
    estado = serializers.CharField(max_length=100)
    cep = serializers.CharField(max_length=10)
    pais = serializers.CharField(max_length=100, required=False, default='India')
    telefone = serializers.CharField(max_length=20)
    email = serializers.EmailField(required=False, allow_blank=True, default='')

    def validate_cep(self, value):
        digitos = value.replace(' ', '')
        if not digitos.isdigit() or len(digitos) != 6:
            raise serializers.ValidationError("O PIN code deve ter 6 dígitos.")
        return digitos

    def to_entity(self, dados) -> EnderecoEntrega:
        return EnderecoEntrega(**dados)


class PagamentoPedidoSerializer(serializers.Serializer):
    metodo = serializers.CharField()
    status = serializers.CharField()
    gateway_pedido_id = serializers.CharField(allow_null=True)
    gateway_pagamento_id = serializers.CharField(allow_null=True)
    reembolso_id = serializers.CharField(allow_null=True)
    pago_em = serializers.DateTimeField(allow_null=True)
    valor_reembolsado = _dinheiro()


class RastreamentoSerializer(serializers.Serializer):
    transportadora = serializers.CharField(required=False, allow_blank=True)
    codigo_rastreio = serializers.CharField(required=False, allow_blank=True)
    url_rastreio = serializers.URLField(required=False, allow_blank=True)
    previsao_entrega = serializers.DateTimeField(required=False, allow_null=True)


class HistoricoStatusSerializer(serializers.Serializer):
    status = serializers.CharField()
    observacao = serializers.CharField()
    atualizado_por = serializers.IntegerField(allow_null=True)
    data = serializers.DateTimeField()


class PedidoSerializer(serializers.Serializer):
    id = serializers.IntegerField()
    numero_pedido = serializers.CharField()
    usuario_id = serializers.IntegerField()
    status = serializers.CharField()
    itens = ItemPedidoSerializer(many=True)
    subtotal = _dinheiro()
    desconto = _dinheiro()
    frete = _dinheiro()
    imposto = _dinheiro()
    total = _dinheiro()
    cupom = CupomAplicadoSerializer(allow_null=True)
    tipo_entrega = serializers.CharField()
    metodo_envio = serializers.CharField()
    endereco_entrega = EnderecoEntregaSerializer(allow_null=True)
    pagamento = PagamentoPedidoSerializer()
    rastreamento = RastreamentoSerializer()
    historico = HistoricoStatusSerializer(many=True)
    pode_ser_cancelado = serializers.BooleanField()
    entregue_em = serializers.DateTimeField(allow_null=True)
    cancelado_em = serializers.DateTimeField(allow_null=True)
    motivo_cancelamento = serializers.CharField()
    motivo_devolucao = serializers.CharField()
    data_criacao = serializers.DateTimeField()


class PedidoAdminSerializer(PedidoSerializer):
    observacoes_internas = serializers.CharField()


class AvaliacaoSerializer(serializers.Serializer):
    id = serializers.IntegerField(read_only=True)
    produto_id = serializers.IntegerField(read_only=True)
    usuario_id = serializers.IntegerField(read_only=True)
    nota = serializers.IntegerField(min_value=1, max_value=5)
    titulo = serializers.CharField(max_length=100, required=False, allow_blank=True, default='')
    comentario = serializers.CharField(max_length=1000, required=False, allow_blank=True, default='')
    compra_verificada = serializers.BooleanField(read_only=True)
    data_criacao = serializers.DateTimeField(read_only=True)


class ItemListaDesejosSerializer(serializers.Serializer):
    produto_id = serializers.IntegerField()
    variante_id = serializers.IntegerField(allow_null=True)
    adicionado_em = serializers.DateTimeField()
    produto = ProdutoSerializer(allow_null=True)


class ListaDesejosSerializer(serializers.Serializer):
    itens = ItemListaDesejosSerializer(many=True)


# ====================================================================
# SERIALIZERS DE ENTRADA (validação das requisições)
# ====================================================================

class AdicionarItemSerializer(serializers.Serializer):
    produto_id = serializers.IntegerField()
    variante_id = serializers.IntegerField()
    quantidade = serializers.IntegerField(min_value=1, max_value=QUANTIDADE_MAXIMA_ITEM, default=1)


class AtualizarItemSerializer(serializers.Serializer):
    produto_id = serializers.IntegerField()
    variante_id = serializers.IntegerField()
    quantidade = serializers.IntegerField(min_value=1, max_value=QUANTIDADE_MAXIMA_ITEM)


class MesclarCarrinhoSerializer(serializers.Serializer):
    itens = AdicionarItemSerializer(many=True)


class CodigoCupomSerializer(serializers.Serializer):
    codigo = serializers.CharField(max_length=30)


class ValidarCupomSerializer(serializers.Serializer):
    codigo = serializers.CharField(max_length=30)
    subtotal = _dinheiro(min_value=0)


class CupomLoteEntradaSerializer(CupomSerializer):
    """Termos comuns do lote; o código é gerado."""
    codigo = serializers.CharField(max_length=30, required=False)


class CupomLoteSerializer(serializers.Serializer):
    prefixo = serializers.CharField(max_length=20)
    quantidade = serializers.IntegerField(min_value=1, max_value=100)
    dados = CupomLoteEntradaSerializer()

    def validate(self, attrs):
        attrs['dados'].pop('codigo', None)
        return attrs


class EntregaSerializer(serializers.Serializer):
    """Tipo de entrega e endereço; o endereço é obrigatório para entrega a domicílio."""
    tipo_entrega = serializers.ChoiceField(choices=TIPOS_ENTREGA, default=ENTREGA_DOMICILIO)
    endereco_entrega = EnderecoEntregaSerializer(required=False, allow_null=True)

    def validate(self, attrs):
        if attrs['tipo_entrega'] == ENTREGA_DOMICILIO and not attrs.get('endereco_entrega'):
            raise serializers.ValidationError(
                {'endereco_entrega': "Endereço de entrega é obrigatório para entrega a domicílio."})
        return attrs

    def endereco_entity(self):
        dados = self.validated_data.get('endereco_entrega')
        return EnderecoEntrega(**dados) if dados else None


class VerificarPagamentoSerializer(EntregaSerializer):
    gateway_pedido_id = serializers.CharField(max_length=100)
    gateway_pagamento_id = serializers.CharField(max_length=100)
    assinatura = serializers.CharField(max_length=255)
    carrinho_id = serializers.IntegerField()


class ReembolsoSerializer(serializers.Serializer):
    valor = _dinheiro(required=False, allow_null=True, default=None)
    motivo = serializers.CharField(max_length=500, required=False, allow_blank=True, default='')


class MotivoSerializer(serializers.Serializer):
    motivo = serializers.CharField(max_length=500, required=False, allow_blank=True, default='')


class AtualizarStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=STATUS_PEDIDO)
    observacao = serializers.CharField(max_length=500, required=False, allow_blank=True, default='')


class ObservacoesSerializer(serializers.Serializer):
    observacoes = serializers.CharField(allow_blank=True)


class FavoritoSerializer(serializers.Serializer):
    produto_id = serializers.IntegerField()
    variante_id = serializers.IntegerField(required=False, allow_null=True, default=None)


class MoverParaCarrinhoSerializer(FavoritoSerializer):
    quantidade = serializers.IntegerField(min_value=1, max_value=QUANTIDADE_MAXIMA_ITEM, default=1)
