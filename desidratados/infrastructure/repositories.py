"""
Camada de Infraestrutura: Implementação dos Repositórios.

Esta camada traduz as operações abstratas definidas nas Portas da Core
em chamadas concretas ao Django ORM.
"""
import logging
from dataclasses import asdict
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, List, Optional

from django.apps import apps
from django.db import transaction
from django.db.models import Q, F, Prefetch
from django.db.utils import IntegrityError
from django.utils import timezone

from desidratados.core.entities import (
    Produto, Categoria, Carrinho, Cupom, Pedido, Usuario, EnderecoEntrega,
    PagamentoPedido, RegistroConciliacao, Avaliacao, ListaDesejos, ParametrosLoja,
    gerar_numero_pedido,
)
from desidratados.core.ports import (
    IProdutoRepository,
    ICarrinhoRepository,
    ICupomRepository,
    IPedidoRepository,
    IConciliacaoRepository,
    IUsuarioRepository,
    IAvaliacaoRepository,
    IListaDesejosRepository,
)
from desidratados.core.exceptions import (
    ItemNaoEncontradoError,
    PedidoNaoEncontradoError,
    CupomNaoEncontradoError,
    EstoqueInsuficienteError,
    CarrinhoVazioError,
    CarrinhoInexistenteError,
    CupomInelegivelError,
    PagamentoDivergenteError,
    ConflitoConcorrenciaError,
)

from .mappers import (
    UsuarioMapper, CategoriaMapper, ProdutoMapper, ItemCarrinhoMapper, CarrinhoMapper,
    CupomMapper, ItemPedidoMapper, PedidoMapper, ConciliacaoMapper, AvaliacaoMapper,
    ListaDesejosMapper,
)

logger = logging.getLogger(__name__)


# Helper para Lazy Loading
def get_model(app_label, model_name):
    """Busca o modelo Django de forma segura (Lazy Loading)."""
    return apps.get_model(app_label, model_name)


# ====================================================================
# 1. CATÁLOGO
# ====================================================================

class ProdutoRepositoryDjango(IProdutoRepository):
    """Implementação do ProdutoRepository usando o Django ORM."""

    # Propriedades para carregar modelos de forma LAZY
    @property
    def ProdutoModel(self):
        return get_model('catalogo', 'Produto')

    @property
    def VarianteModel(self):
        return get_model('catalogo', 'Variante')

    @property
    def CategoriaModel(self):
        return get_model('catalogo', 'Categoria')

    def _queryset(self):
        return self.ProdutoModel.objects.select_related('categoria').prefetch_related('variantes')

    def buscar_por_id(self, produto_id) -> Optional[Produto]:
        try:
            return ProdutoMapper.to_entity(self._queryset().get(pk=produto_id))
        except (self.ProdutoModel.DoesNotExist, ValueError, TypeError):
            return None

    def buscar_por_slug(self, slug: str) -> Optional[Produto]:
        model = self._queryset().filter(slug=slug).first()
        return ProdutoMapper.to_entity(model) if model else None

    def listar(
        self,
        busca: Optional[str] = None,
        categoria_slug: Optional[str] = None,
        apenas_ativos: bool = True,
    ) -> List[Produto]:
        qs = self._queryset()
        if apenas_ativos:
            qs = qs.filter(ativo=True)
        if busca:
            qs = qs.filter(Q(nome__icontains=busca) | Q(descricao__icontains=busca))
        if categoria_slug:
            qs = qs.filter(categoria__slug=categoria_slug)
        return [ProdutoMapper.to_entity(model) for model in qs]

    def listar_categorias(self) -> List[Categoria]:
        return [CategoriaMapper.to_entity(m) for m in self.CategoriaModel.objects.filter(ativa=True)]

    def decrementar_estoque_variante(self, produto_id, variante_id, quantidade: int) -> bool:
        """
        Baixa o estoque somente se ainda houver `quantidade` unidades.
        A condição fica no WHERE do UPDATE, então duas baixas concorrentes
        nunca deixam o estoque negativo.
        """
        atualizadas = self.VarianteModel.objects.filter(
            pk=variante_id, produto_id=produto_id, estoque__gte=quantidade
        ).update(estoque=F('estoque') - quantidade)
        if not atualizadas:
            return False
        self.ProdutoModel.objects.filter(pk=produto_id).update(vendidos=F('vendidos') + quantidade)
        return True

    def incrementar_estoque_variante(self, produto_id, variante_id, quantidade: int):
        self.VarianteModel.objects.filter(pk=variante_id, produto_id=produto_id).update(
            estoque=F('estoque') + quantidade
        )
        self.ProdutoModel.objects.filter(pk=produto_id).update(vendidos=F('vendidos') - quantidade)

    def atualizar_avaliacao(self, produto_id, media: Decimal, quantidade: int):
        self.ProdutoModel.objects.filter(pk=produto_id).update(
            avaliacao_media=media, avaliacao_quantidade=quantidade
        )


# ====================================================================
# 2. CARRINHO
# ====================================================================

class CarrinhoRepositoryDjango(ICarrinhoRepository):
    """
    Implementação do CarrinhoRepository usando o Django ORM.

    `salvar` recalcula os totais, renova a expiração e incrementa a versão;
    a gravação só acontece se a versão lida ainda for a do banco.
    """

    def __init__(self, parametros: Optional[ParametrosLoja] = None):
        self.parametros = parametros or ParametrosLoja()

    @property
    def CarrinhoModel(self):
        return get_model('carrinho', 'Carrinho')

    @property
    def ItemCarrinhoModel(self):
        return get_model('carrinho', 'ItemCarrinho')

    def _nova_expiracao(self) -> datetime:
        return timezone.now() + timedelta(days=self.parametros.dias_expiracao_carrinho)

    def _carregar(self, **filtros) -> Optional[Carrinho]:
        model = self.CarrinhoModel.objects.prefetch_related('itens').filter(**filtros).first()
        if model is None:
            return None
        if model.expira_em <= timezone.now():
            logger.info("Carrinho %s expirado removido ao ser acessado", model.pk)
            model.delete()
            return None
        return CarrinhoMapper.to_entity(model)

    def buscar_por_usuario(self, usuario_id) -> Optional[Carrinho]:
        return self._carregar(usuario_id=usuario_id)

    def buscar_por_id(self, carrinho_id) -> Optional[Carrinho]:
        return self._carregar(pk=carrinho_id)

    def buscar_ou_criar(self, usuario_id) -> Carrinho:
        """Busca um carrinho existente ou cria um novo se não existir."""
        carrinho = self.buscar_por_usuario(usuario_id)
        if carrinho:
            return carrinho
        try:
            with transaction.atomic():
                model = self.CarrinhoModel.objects.create(usuario_id=usuario_id, expira_em=self._nova_expiracao())
        except IntegrityError:
            # outra requisição criou o carrinho ao mesmo tempo
            return self.buscar_por_usuario(usuario_id)
        return CarrinhoMapper.to_entity(model)

    @transaction.atomic
    def salvar(self, carrinho: Carrinho) -> Carrinho:
        """Salva a Entidade Carrinho, substituindo os itens gravados."""
        if not carrinho.id:
            raise ValueError("Carrinho deve ter um ID para ser salvo (obtido via buscar_ou_criar).")

        p = self.parametros
        carrinho.recalcular_totais(p.taxa_imposto, p.limite_frete_gratis, p.custo_frete)

        agora = timezone.now()
        expira_em = agora + timedelta(days=p.dias_expiracao_carrinho)
        atualizados = self.CarrinhoModel.objects.filter(pk=carrinho.id, versao=carrinho.versao).update(
            cupom=carrinho.cupom.to_dict() if carrinho.cupom else None,
            subtotal=carrinho.subtotal,
            desconto=carrinho.desconto,
            frete=carrinho.frete,
            imposto=carrinho.imposto,
            total=carrinho.total,
            versao=F('versao') + 1,
            expira_em=expira_em,
            data_atualizacao=agora,
        )
        if not atualizados:
            if self.CarrinhoModel.objects.filter(pk=carrinho.id).exists():
                raise ConflitoConcorrenciaError()
            raise CarrinhoInexistenteError()

        carrinho_model = self.CarrinhoModel.objects.get(pk=carrinho.id)
        self.ItemCarrinhoModel.objects.filter(carrinho=carrinho_model).delete()
        self.ItemCarrinhoModel.objects.bulk_create(
            [ItemCarrinhoMapper.to_model(item, carrinho_model) for item in carrinho.itens]
        )
        return CarrinhoMapper.to_entity(carrinho_model)

    def deletar(self, carrinho_id):
        self.CarrinhoModel.objects.filter(pk=carrinho_id).delete()

    def remover_expirados(self, momento: datetime) -> int:
        expirados = self.CarrinhoModel.objects.filter(expira_em__lte=momento)
        quantidade = expirados.count()
        expirados.delete()
        return quantidade


# ====================================================================
# 3. CUPONS
# ====================================================================

class CupomRepositoryDjango(ICupomRepository):

    @property
    def CupomModel(self):
        return get_model('cupons', 'Cupom')

    def _queryset(self):
        return self.CupomModel.objects.prefetch_related('usos', 'produtos_aplicaveis', 'categorias_aplicaveis')

    def buscar_por_codigo(self, codigo: str) -> Optional[Cupom]:
        model = self._queryset().filter(codigo=(codigo or '').strip().upper()).first()
        return CupomMapper.to_entity(model) if model else None

    def buscar_por_id(self, cupom_id) -> Optional[Cupom]:
        model = self._queryset().filter(pk=cupom_id).first()
        return CupomMapper.to_entity(model) if model else None

    def listar(self, ativo: Optional[bool] = None, busca: Optional[str] = None) -> List[Cupom]:
        qs = self._queryset()
        if ativo is not None:
            qs = qs.filter(ativo=ativo)
        if busca:
            qs = qs.filter(Q(codigo__icontains=busca) | Q(descricao__icontains=busca))
        return [CupomMapper.to_entity(m) for m in qs]

    def existe_codigo(self, codigo: str) -> bool:
        return self.CupomModel.objects.filter(codigo=codigo.strip().upper()).exists()

    @transaction.atomic
    def salvar(self, cupom: Cupom) -> Cupom:
        model = None
        if cupom.id:
            model = self.CupomModel.objects.filter(pk=cupom.id).first()
            if model is None:
                raise CupomNaoEncontradoError(f"Cupom ID {cupom.id} não existe para atualização.")
        model = CupomMapper.to_model(cupom, model)
        model.save()
        model.produtos_aplicaveis.set(cupom.produtos_aplicaveis)
        model.categorias_aplicaveis.set(cupom.categorias_aplicaveis)
        return self.buscar_por_id(model.pk)

    def deletar(self, cupom_id):
        self.CupomModel.objects.filter(pk=cupom_id).delete()


# ====================================================================
# 4. PEDIDOS
# ====================================================================

class PedidoRepositoryDjango(IPedidoRepository):
    """Implementação do PedidoRepository usando o Django ORM."""

    def __init__(self, produto_repo: Optional[ProdutoRepositoryDjango] = None):
        self.produto_repo = produto_repo or ProdutoRepositoryDjango()

    @property
    def PedidoModel(self):
        return get_model('pedidos', 'Pedido')

    @property
    def ItemPedidoModel(self):
        return get_model('pedidos', 'ItemPedido')

    @property
    def HistoricoModel(self):
        return get_model('pedidos', 'HistoricoStatusPedido')

    @property
    def CarrinhoModel(self):
        return get_model('carrinho', 'Carrinho')

    @property
    def CupomModel(self):
        return get_model('cupons', 'Cupom')

    @property
    def UsoCupomModel(self):
        return get_model('cupons', 'UsoCupom')

    @property
    def VarianteModel(self):
        return get_model('catalogo', 'Variante')

    def _queryset(self):
        return self.PedidoModel.objects.prefetch_related(
            'itens',
            Prefetch('historico', queryset=self.HistoricoModel.objects.order_by('data', 'id')),
        )

    # ----------------------------------------------------------------
    # Conversão carrinho -> pedido
    # ----------------------------------------------------------------

    def converter_carrinho(
        self,
        carrinho_id,
        pagamento: PagamentoPedido,
        endereco: Optional[EnderecoEntrega],
        tipo_entrega: str,
        total_esperado: Decimal,
        prefixo: str,
    ) -> Pedido:
        try:
            with transaction.atomic():
                return self._converter(carrinho_id, pagamento, endereco, tipo_entrega, total_esperado, prefixo)
        except IntegrityError:
            # gateway_pagamento_id é único: outra requisição já converteu este pagamento
            existente = self.buscar_por_pagamento_id(pagamento.gateway_pagamento_id)
            if existente:
                logger.info("Pagamento %s já convertido no pedido %s",
                            pagamento.gateway_pagamento_id, existente.numero_pedido)
                return existente
            raise

    def _converter(self, carrinho_id, pagamento, endereco, tipo_entrega, total_esperado, prefixo) -> Pedido:
        carrinho_model = self.CarrinhoModel.objects.select_for_update().filter(pk=carrinho_id).first()
        if carrinho_model is None or carrinho_model.expira_em <= timezone.now():
            raise CarrinhoInexistenteError()
        carrinho = CarrinhoMapper.to_entity(carrinho_model)
        if not carrinho.itens:
            raise CarrinhoVazioError()
        if carrinho.total != total_esperado:
            raise PagamentoDivergenteError("O carrinho foi alterado depois do pagamento.")

        pedido = Pedido.a_partir_do_carrinho(carrinho, pagamento, endereco, tipo_entrega, prefixo)
        while self.PedidoModel.objects.filter(numero_pedido=pedido.numero_pedido).exists():
            pedido.numero_pedido = gerar_numero_pedido(prefixo)

        pedido_model = self.PedidoModel.objects.create(
            numero_pedido=pedido.numero_pedido,
            usuario_id=pedido.usuario_id,
            status=pedido.status,
            subtotal=pedido.subtotal,
            desconto=pedido.desconto,
            frete=pedido.frete,
            imposto=pedido.imposto,
            total=pedido.total,
            cupom=pedido.cupom.to_dict() if pedido.cupom else None,
            endereco_entrega=asdict(endereco) if endereco else None,
            tipo_entrega=pedido.tipo_entrega,
            metodo_envio=pedido.metodo_envio,
            pagamento_metodo=pagamento.metodo,
            pagamento_status=pagamento.status,
            gateway_pedido_id=pagamento.gateway_pedido_id,
            gateway_pagamento_id=pagamento.gateway_pagamento_id,
            gateway_assinatura=pagamento.gateway_assinatura,
            pago_em=pagamento.pago_em,
        )
        self.ItemPedidoModel.objects.bulk_create(
            [ItemPedidoMapper.to_model(item, pedido_model) for item in pedido.itens]
        )
        self._gravar_historico(pedido_model, pedido.historico)

        for item in carrinho.itens:
            if not self.produto_repo.decrementar_estoque_variante(item.produto_id, item.variante_id, item.quantidade):
                disponivel = self.VarianteModel.objects.filter(pk=item.variante_id).values_list(
                    'estoque', flat=True).first() or 0
                raise EstoqueInsuficienteError(disponivel=disponivel, nome_item=item.nome)

        if carrinho.cupom:
            self._registrar_uso_cupom(carrinho.cupom.codigo, carrinho.usuario_id, pedido_model)

        carrinho_model.delete()
        return self.buscar_por_id(pedido_model.pk)

    def _registrar_uso_cupom(self, codigo: str, usuario_id, pedido_model):
        """Trava a linha do cupom, confere os limites e acrescenta o uso."""
        cupom_model = self.CupomModel.objects.select_for_update().filter(codigo=codigo).first()
        if cupom_model is None:
            raise CupomInelegivelError("O cupom aplicado não existe mais.")
        usos = self.UsoCupomModel.objects.filter(cupom=cupom_model)
        if cupom_model.limite_uso is not None and usos.count() >= cupom_model.limite_uso:
            raise CupomInelegivelError("O cupom atingiu o limite de usos.")
        if usos.filter(usuario_id=usuario_id).count() >= cupom_model.limite_uso_por_usuario:
            raise CupomInelegivelError("Você já utilizou este cupom o número máximo de vezes.")
        self.UsoCupomModel.objects.create(cupom=cupom_model, usuario_id=usuario_id, pedido=pedido_model)

    def _gravar_historico(self, pedido_model, entradas):
        self.HistoricoModel.objects.bulk_create([
            self.HistoricoModel(
                pedido=pedido_model,
                status=h.status,
                observacao=h.observacao,
                atualizado_por_id=h.atualizado_por,
                data=h.data,
            )
            for h in entradas
        ])

    # ----------------------------------------------------------------
    # Consultas
    # ----------------------------------------------------------------

    def buscar_por_id(self, pedido_id) -> Optional[Pedido]:
        try:
            return PedidoMapper.to_entity(self._queryset().get(pk=pedido_id))
        except (self.PedidoModel.DoesNotExist, ValueError, TypeError):
            return None

    def buscar_por_numero(self, numero_pedido: str) -> Optional[Pedido]:
        model = self._queryset().filter(numero_pedido=numero_pedido).first()
        return PedidoMapper.to_entity(model) if model else None

    def buscar_por_pagamento_id(self, gateway_pagamento_id: str) -> Optional[Pedido]:
        if not gateway_pagamento_id:
            return None
        model = self._queryset().filter(gateway_pagamento_id=gateway_pagamento_id).first()
        return PedidoMapper.to_entity(model) if model else None

    def listar_por_usuario(self, usuario_id, status: Optional[str] = None) -> List[Pedido]:
        qs = self._queryset().filter(usuario_id=usuario_id)
        if status:
            qs = qs.filter(status=status)
        return [PedidoMapper.to_entity(m) for m in qs]

    def listar_todos(
        self,
        status: Optional[str] = None,
        status_pagamento: Optional[str] = None,
        busca: Optional[str] = None,
        data_inicio: Optional[datetime] = None,
        data_fim: Optional[datetime] = None,
    ) -> List[Pedido]:
        qs = self._queryset()
        if status:
            qs = qs.filter(status=status)
        if status_pagamento:
            qs = qs.filter(pagamento_status=status_pagamento)
        if busca:
            qs = qs.filter(Q(numero_pedido__icontains=busca) | Q(usuario__email__icontains=busca))
        if data_inicio:
            qs = qs.filter(data_criacao__gte=data_inicio)
        if data_fim:
            qs = qs.filter(data_criacao__lte=data_fim)
        return [PedidoMapper.to_entity(m) for m in qs]

    def contar_pedidos_pagos(self, usuario_id) -> int:
        return self.PedidoModel.objects.filter(usuario_id=usuario_id, pagamento_status='concluido').count()

    def usuario_comprou_produto(self, usuario_id, produto_id) -> bool:
        return self.PedidoModel.objects.filter(
            usuario_id=usuario_id, pagamento_status='concluido', itens__produto_id=produto_id
        ).exists()

    # ----------------------------------------------------------------
    # Alterações após o pagamento
    # ----------------------------------------------------------------

    @transaction.atomic
    def salvar(self, pedido: Pedido) -> Pedido:
        """Grava só os campos mutáveis; itens e totais nunca são reescritos."""
        atualizados = self.PedidoModel.objects.filter(pk=pedido.id).update(
            **PedidoMapper.campos_mutaveis(pedido), data_atualizacao=timezone.now()
        )
        if not atualizados:
            raise PedidoNaoEncontradoError(f"Pedido ID {pedido.id} não existe.")

        gravadas = self.HistoricoModel.objects.filter(pedido_id=pedido.id).count()
        novas = pedido.historico[gravadas:]
        if novas:
            self._gravar_historico(self.PedidoModel.objects.get(pk=pedido.id), novas)
        return self.buscar_por_id(pedido.id)

    def _travar(self, pedido_id) -> Pedido:
        """SELECT ... FOR UPDATE na linha do pedido e releitura do estado gravado."""
        if self.PedidoModel.objects.select_for_update().filter(pk=pedido_id).first() is None:
            raise PedidoNaoEncontradoError(f"Pedido ID {pedido_id} não existe.")
        return self.buscar_por_id(pedido_id)

    @transaction.atomic
    def atualizar_com_trava(self, pedido_id, alteracao: Callable[[Pedido], None]) -> Pedido:
        pedido = self._travar(pedido_id)
        alteracao(pedido)
        return self.salvar(pedido)

    @transaction.atomic
    def cancelar(self, pedido_id, alteracao: Callable[[Pedido], None]) -> Pedido:
        pedido = self._travar(pedido_id)
        alteracao(pedido)
        pedido_salvo = self.salvar(pedido)
        for item in pedido.itens:
            if item.produto_id:
                self.produto_repo.incrementar_estoque_variante(item.produto_id, item.variante_id, item.quantidade)
        return pedido_salvo


class ConciliacaoRepositoryDjango(IConciliacaoRepository):

    @property
    def ConciliacaoModel(self):
        return get_model('pedidos', 'ConciliacaoPagamento')

    def registrar_captura(self, registro: RegistroConciliacao) -> RegistroConciliacao:
        model, criado = self.ConciliacaoModel.objects.get_or_create(
            gateway_pagamento_id=registro.gateway_pagamento_id,
            defaults={
                'gateway_pedido_id': registro.gateway_pedido_id or '',
                'carrinho_id': registro.carrinho_id,
                'usuario_id': registro.usuario_id,
                'assinatura': registro.assinatura or '',
                'tipo_entrega': registro.tipo_entrega,
                'endereco_entrega': registro.endereco_entrega,
                'tentativas': 1,
            },
        )
        if not criado:
            self.ConciliacaoModel.objects.filter(pk=model.pk).update(tentativas=F('tentativas') + 1)
            model.refresh_from_db()
        return ConciliacaoMapper.to_entity(model)

    def buscar_por_pagamento_id(self, gateway_pagamento_id: str) -> Optional[RegistroConciliacao]:
        model = self.ConciliacaoModel.objects.filter(gateway_pagamento_id=gateway_pagamento_id).first()
        return ConciliacaoMapper.to_entity(model) if model else None

    def marcar_convertido(self, gateway_pagamento_id: str, pedido_id):
        self.ConciliacaoModel.objects.filter(gateway_pagamento_id=gateway_pagamento_id).update(
            status='convertido', pedido_id=pedido_id, motivo='', data_atualizacao=timezone.now()
        )

    def marcar_falha(self, gateway_pagamento_id: str, motivo: str):
        self.ConciliacaoModel.objects.filter(gateway_pagamento_id=gateway_pagamento_id).update(
            status='falhou', motivo=motivo, data_atualizacao=timezone.now()
        )

    def listar_pendentes(self, criado_antes_de: Optional[datetime] = None) -> List[RegistroConciliacao]:
        qs = self.ConciliacaoModel.objects.filter(status='capturado')
        if criado_antes_de:
            qs = qs.filter(data_criacao__lte=criado_antes_de)
        return [ConciliacaoMapper.to_entity(m) for m in qs]

    def listar_falhas(self) -> List[RegistroConciliacao]:
        return [ConciliacaoMapper.to_entity(m) for m in self.ConciliacaoModel.objects.filter(status='falhou')]


# ====================================================================
# 5. USUÁRIOS, AVALIAÇÕES E LISTA DE DESEJOS
# ====================================================================

class UsuarioRepositoryDjango(IUsuarioRepository):

    @property
    def UsuarioModel(self):
        return get_model('infrastructure', 'Usuario')

    def buscar_por_id(self, usuario_id) -> Optional[Usuario]:
        model = self.UsuarioModel.objects.filter(pk=usuario_id).first()
        return UsuarioMapper.to_entity(model) if model else None


class AvaliacaoRepositoryDjango(IAvaliacaoRepository):

    @property
    def AvaliacaoModel(self):
        return get_model('avaliacoes', 'Avaliacao')

    def buscar_por_id(self, avaliacao_id) -> Optional[Avaliacao]:
        model = self.AvaliacaoModel.objects.filter(pk=avaliacao_id).first()
        return AvaliacaoMapper.to_entity(model) if model else None

    def buscar_do_usuario(self, produto_id, usuario_id) -> Optional[Avaliacao]:
        model = self.AvaliacaoModel.objects.filter(produto_id=produto_id, usuario_id=usuario_id).first()
        return AvaliacaoMapper.to_entity(model) if model else None

    def listar_por_produto(self, produto_id, apenas_aprovadas: bool = True) -> List[Avaliacao]:
        qs = self.AvaliacaoModel.objects.filter(produto_id=produto_id)
        if apenas_aprovadas:
            qs = qs.filter(aprovada=True)
        return [AvaliacaoMapper.to_entity(m) for m in qs]

    def listar_pendentes(self) -> List[Avaliacao]:
        return [AvaliacaoMapper.to_entity(m) for m in self.AvaliacaoModel.objects.filter(aprovada=False)]

    def notas_aprovadas(self, produto_id) -> List[int]:
        return list(self.AvaliacaoModel.objects.filter(produto_id=produto_id, aprovada=True)
                    .values_list('nota', flat=True))

    def salvar(self, avaliacao: Avaliacao) -> Avaliacao:
        campos = {
            'nota': avaliacao.nota,
            'titulo': avaliacao.titulo,
            'comentario': avaliacao.comentario,
            'compra_verificada': avaliacao.compra_verificada,
            'aprovada': avaliacao.aprovada,
        }
        if avaliacao.id:
            self.AvaliacaoModel.objects.filter(pk=avaliacao.id).update(**campos)
            model = self.AvaliacaoModel.objects.get(pk=avaliacao.id)
        else:
            model = self.AvaliacaoModel.objects.create(
                produto_id=avaliacao.produto_id, usuario_id=avaliacao.usuario_id, **campos
            )
        return AvaliacaoMapper.to_entity(model)

    def deletar(self, avaliacao_id):
        self.AvaliacaoModel.objects.filter(pk=avaliacao_id).delete()


class ListaDesejosRepositoryDjango(IListaDesejosRepository):

    @property
    def ListaModel(self):
        return get_model('favoritos', 'ListaDesejos')

    @property
    def ItemModel(self):
        return get_model('favoritos', 'ItemListaDesejos')

    def _modelo(self, usuario_id):
        model, _ = self.ListaModel.objects.get_or_create(usuario_id=usuario_id)
        return model

    def _carregar(self, model) -> ListaDesejos:
        model = self.ListaModel.objects.prefetch_related(
            'itens__produto__variantes').get(pk=model.pk)
        return ListaDesejosMapper.to_entity(model)

    def buscar_ou_criar(self, usuario_id) -> ListaDesejos:
        return self._carregar(self._modelo(usuario_id))

    def adicionar(self, usuario_id, produto_id, variante_id=None) -> ListaDesejos:
        model = self._modelo(usuario_id)
        self.ItemModel.objects.get_or_create(lista=model, produto_id=produto_id,
                                             defaults={'variante_id': variante_id})
        return self._carregar(model)

    def remover(self, usuario_id, produto_id) -> ListaDesejos:
        model = self._modelo(usuario_id)
        apagados, _ = self.ItemModel.objects.filter(lista=model, produto_id=produto_id).delete()
        if not apagados:
            raise ItemNaoEncontradoError("Produto não está na lista de desejos.")
        return self._carregar(model)

    def limpar(self, usuario_id) -> ListaDesejos:
        model = self._modelo(usuario_id)
        self.ItemModel.objects.filter(lista=model).delete()
        return self._carregar(model)
