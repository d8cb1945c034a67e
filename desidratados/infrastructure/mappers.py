"""
Mapeadores (Mappers) para converter entre:
1. Modelos do Django ORM
2. Entidades de Domínio (desidratados.core.entities)
"""

from django.apps import apps

from desidratados.core.entities import (
    Usuario as UsuarioEntity,
    Categoria as CategoriaEntity,
    Produto as ProdutoEntity,
    Variante as VarianteEntity,
    Carrinho as CarrinhoEntity,
    ItemCarrinho as ItemCarrinhoEntity,
    CupomAplicado,
    Cupom as CupomEntity,
    UsoCupom as UsoCupomEntity,
    Pedido as PedidoEntity,
    ItemPedido as ItemPedidoEntity,
    EnderecoEntrega,
    PagamentoPedido,
    Rastreamento,
    HistoricoStatus,
    RegistroConciliacao,
    Avaliacao as AvaliacaoEntity,
    ListaDesejos as ListaDesejosEntity,
    ItemListaDesejos as ItemListaDesejosEntity,
)


def get_model(app_label: str, model_name: str):
    """Retorna um modelo do Django de forma segura (lazy loading)."""
    return apps.get_model(app_label, model_name)


# ====================================================================
# MAPPERS DE USUÁRIO E CATÁLOGO
# ====================================================================

class UsuarioMapper:

    @staticmethod
    def to_entity(model) -> UsuarioEntity:
        return UsuarioEntity(
            id=model.pk,
            email=model.email,
            nome=model.nome_completo,
            is_admin=model.is_staff,
        )


class CategoriaMapper:
    """Mapeador para Categoria."""

    @staticmethod
    def to_entity(model) -> CategoriaEntity:
        return CategoriaEntity(
            id=model.pk,
            nome=model.nome,
            slug=model.slug,
            descricao=model.descricao,
            ativa=model.ativa,
        )


class VarianteMapper:

    @staticmethod
    def to_entity(model) -> VarianteEntity:
        return VarianteEntity(
            id=model.pk,
            tamanho=model.tamanho,
            peso=model.peso,
            unidade_peso=model.unidade_peso,
            preco=model.preco,
            estoque=model.estoque,
            sku=model.sku or '',
            disponivel=model.disponivel,
        )


class ProdutoMapper:
    """Mapeador para Produto, incluindo as variantes (pré-carregadas quando possível)."""

    @staticmethod
    def to_entity(model) -> ProdutoEntity:
        return ProdutoEntity(
            id=model.pk,
            nome=model.nome,
            slug=model.slug,
            descricao=model.descricao,
            descricao_curta=model.descricao_curta,
            preco_base=model.preco_base,
            preco_comparacao=model.preco_comparacao,
            categoria_id=model.categoria_id,
            ativo=model.ativo,
            em_destaque=model.em_destaque,
            vendidos=model.vendidos,
            limite_estoque_baixo=model.limite_estoque_baixo,
            avaliacao_media=model.avaliacao_media,
            avaliacao_quantidade=model.avaliacao_quantidade,
            imagem=model.imagem,
            variantes=[VarianteMapper.to_entity(v) for v in model.variantes.all()],
        )


# ====================================================================
# MAPPERS DO CARRINHO
# ====================================================================

class ItemCarrinhoMapper:

    @staticmethod
    def to_entity(model) -> ItemCarrinhoEntity:
        return ItemCarrinhoEntity(
            id=model.pk,
            produto_id=model.produto_id,
            variante_id=model.variante_id,
            quantidade=model.quantidade,
            preco_unitario=model.preco_unitario,
            nome=model.nome,
            tamanho=model.tamanho,
            peso=model.peso,
            unidade_peso=model.unidade_peso,
            imagem=model.imagem,
        )

    @staticmethod
    def to_model(entity: ItemCarrinhoEntity, carrinho_model):
        ItemCarrinhoModel = get_model('carrinho', 'ItemCarrinho')
        return ItemCarrinhoModel(
            carrinho=carrinho_model,
            produto_id=entity.produto_id,
            variante_id=entity.variante_id,
            quantidade=entity.quantidade,
            preco_unitario=entity.preco_unitario,
            nome=entity.nome,
            tamanho=entity.tamanho,
            peso=entity.peso,
            unidade_peso=entity.unidade_peso,
            imagem=entity.imagem,
        )


class CarrinhoMapper:

    @staticmethod
    def to_entity(model) -> CarrinhoEntity:
        return CarrinhoEntity(
            id=model.pk,
            usuario_id=model.usuario_id,
            itens=[ItemCarrinhoMapper.to_entity(i) for i in model.itens.all()],
            cupom=CupomAplicado.from_dict(model.cupom),
            subtotal=model.subtotal,
            desconto=model.desconto,
            frete=model.frete,
            imposto=model.imposto,
            total=model.total,
            versao=model.versao,
            expira_em=model.expira_em,
        )


# ====================================================================
# MAPPERS DE CUPOM
# ====================================================================

class CupomMapper:

    @staticmethod
    def to_entity(model) -> CupomEntity:
        return CupomEntity(
            id=model.pk,
            codigo=model.codigo,
            descricao=model.descricao,
            tipo_desconto=model.tipo_desconto,
            valor_desconto=model.valor_desconto,
            compra_minima=model.compra_minima,
            desconto_maximo=model.desconto_maximo,
            limite_uso=model.limite_uso,
            limite_uso_por_usuario=model.limite_uso_por_usuario,
            apenas_primeiro_pedido=model.apenas_primeiro_pedido,
            ativo=model.ativo,
            data_inicio=model.data_inicio,
            data_fim=model.data_fim,
            produtos_aplicaveis=[p.pk for p in model.produtos_aplicaveis.all()],
            categorias_aplicaveis=[c.pk for c in model.categorias_aplicaveis.all()],
            usos=[
                UsoCupomEntity(usuario_id=u.usuario_id, data_uso=u.data_uso, pedido_id=u.pedido_id)
                for u in model.usos.all()
            ],
        )

    @staticmethod
    def to_model(entity: CupomEntity, model=None):
        """Preenche os campos simples; as relações M2M são gravadas pelo repositório."""
        if model is None:
            model = get_model('cupons', 'Cupom')()
        model.codigo = entity.codigo
        model.descricao = entity.descricao
        model.tipo_desconto = entity.tipo_desconto
        model.valor_desconto = entity.valor_desconto
        model.compra_minima = entity.compra_minima
        model.desconto_maximo = entity.desconto_maximo
        model.limite_uso = entity.limite_uso
        model.limite_uso_por_usuario = entity.limite_uso_por_usuario
        model.apenas_primeiro_pedido = entity.apenas_primeiro_pedido
        model.ativo = entity.ativo
        model.data_inicio = entity.data_inicio
        model.data_fim = entity.data_fim
        return model


# ====================================================================
# MAPPERS DE PEDIDO
# ====================================================================

class ItemPedidoMapper:

    @staticmethod
    def to_entity(model) -> ItemPedidoEntity:
        return ItemPedidoEntity(
            produto_id=model.produto_id,
            variante_id=model.variante_id,
            nome=model.nome,
            preco=model.preco,
            quantidade=model.quantidade,
            tamanho=model.tamanho,
            peso=model.peso,
            unidade_peso=model.unidade_peso,
            imagem=model.imagem,
        )

    @staticmethod
    def to_model(entity: ItemPedidoEntity, pedido_model):
        ItemPedidoModel = get_model('pedidos', 'ItemPedido')
        return ItemPedidoModel(
            pedido=pedido_model,
            produto_id=entity.produto_id,
            variante_id=entity.variante_id,
            nome=entity.nome,
            tamanho=entity.tamanho,
            peso=entity.peso,
            unidade_peso=entity.unidade_peso,
            imagem=entity.imagem,
            preco=entity.preco,
            quantidade=entity.quantidade,
            total=entity.total,
        )


class PedidoMapper:
    """Mapeador para Pedido. Os sub-registros achatados no modelo viram objetos na entidade."""

    @staticmethod
    def to_entity(model) -> PedidoEntity:
        return PedidoEntity(
            id=model.pk,
            numero_pedido=model.numero_pedido,
            usuario_id=model.usuario_id,
            itens=[ItemPedidoMapper.to_entity(i) for i in model.itens.all()],
            subtotal=model.subtotal,
            desconto=model.desconto,
            frete=model.frete,
            imposto=model.imposto,
            total=model.total,
            status=model.status,
            endereco_entrega=EnderecoEntrega.from_dict(model.endereco_entrega),
            tipo_entrega=model.tipo_entrega,
            metodo_envio=model.metodo_envio,
            cupom=CupomAplicado.from_dict(model.cupom),
            pagamento=PagamentoPedido(
                metodo=model.pagamento_metodo,
                status=model.pagamento_status,
                gateway_pedido_id=model.gateway_pedido_id,
                gateway_pagamento_id=model.gateway_pagamento_id,
                gateway_assinatura=model.gateway_assinatura,
                reembolso_id=model.reembolso_id,
                pago_em=model.pago_em,
                valor_reembolsado=model.valor_reembolsado,
            ),
            rastreamento=Rastreamento(
                transportadora=model.transportadora,
                codigo_rastreio=model.codigo_rastreio,
                url_rastreio=model.url_rastreio,
                previsao_entrega=model.previsao_entrega,
            ),
            historico=[
                HistoricoStatus(status=h.status, observacao=h.observacao,
                                atualizado_por=h.atualizado_por_id, data=h.data)
                for h in model.historico.all()
            ],
            entregue_em=model.entregue_em,
            cancelado_em=model.cancelado_em,
            motivo_cancelamento=model.motivo_cancelamento,
            motivo_devolucao=model.motivo_devolucao,
            devolucao_solicitada_em=model.devolucao_solicitada_em,
            observacoes_internas=model.observacoes_internas,
            data_criacao=model.data_criacao,
        )

    @staticmethod
    def campos_mutaveis(entity: PedidoEntity) -> dict:
        """Campos que podem mudar depois do pagamento (status, rastreamento, reembolso e notas)."""
        return {
            'status': entity.status,
            'pagamento_status': entity.pagamento.status,
            'reembolso_id': entity.pagamento.reembolso_id,
            'valor_reembolsado': entity.pagamento.valor_reembolsado,
            'transportadora': entity.rastreamento.transportadora or '',
            'codigo_rastreio': entity.rastreamento.codigo_rastreio or '',
            'url_rastreio': entity.rastreamento.url_rastreio or '',
            'previsao_entrega': entity.rastreamento.previsao_entrega,
            'entregue_em': entity.entregue_em,
            'cancelado_em': entity.cancelado_em,
            'motivo_cancelamento': entity.motivo_cancelamento or '',
            'motivo_devolucao': entity.motivo_devolucao or '',
            'devolucao_solicitada_em': entity.devolucao_solicitada_em,
            'observacoes_internas': entity.observacoes_internas or '',
        }


class ConciliacaoMapper:

    @staticmethod
    def to_entity(model) -> RegistroConciliacao:
        return RegistroConciliacao(
            id=model.pk,
            gateway_pagamento_id=model.gateway_pagamento_id,
            gateway_pedido_id=model.gateway_pedido_id,
            carrinho_id=model.carrinho_id,
            usuario_id=model.usuario_id,
            assinatura=model.assinatura,
            tipo_entrega=model.tipo_entrega,
            endereco_entrega=model.endereco_entrega,
            status=model.status,
            motivo=model.motivo,
            tentativas=model.tentativas,
            pedido_id=model.pedido_id,
        )


# ====================================================================
# MAPPERS DE AVALIAÇÃO E LISTA DE DESEJOS
# ====================================================================

class AvaliacaoMapper:

    @staticmethod
    def to_entity(model) -> AvaliacaoEntity:
        return AvaliacaoEntity(
            id=model.pk,
            produto_id=model.produto_id,
            usuario_id=model.usuario_id,
            nota=model.nota,
            titulo=model.titulo,
            comentario=model.comentario,
            compra_verificada=model.compra_verificada,
            aprovada=model.aprovada,
            data_criacao=model.data_criacao,
        )


class ListaDesejosMapper:

    @staticmethod
    def to_entity(model) -> ListaDesejosEntity:
        return ListaDesejosEntity(
            id=model.pk,
            usuario_id=model.usuario_id,
            itens=[
                ItemListaDesejosEntity(
                    produto_id=i.produto_id,
                    variante_id=i.variante_id,
                    adicionado_em=i.adicionado_em,
                    produto=ProdutoMapper.to_entity(i.produto),
                )
                for i in model.itens.all()
            ],
        )
