# desidratados/core/use_cases.py
"""
Implementação dos Casos de Uso (Lógica de Negócio) da aplicação.
Esta camada depende apenas das Entidades e Portas (Interfaces) do Core,
garantindo o isolamento da lógica de negócio.
"""
import json
import logging
import secrets
import string
from dataclasses import asdict
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import List, Optional, Dict, Tuple

# Entidades e Exceções
from desidratados.core.entities import (
    Produto, Variante, Categoria, Carrinho, ItemCarrinho, Cupom, Pedido,
    PagamentoPedido, EnderecoEntrega, HistoricoStatus, RegistroConciliacao,
    Avaliacao, ListaDesejos, ParametrosLoja, Usuario,
    STATUS_PEDIDO, TIPOS_ENTREGA, ENTREGA_DOMICILIO, TIPO_PERCENTUAL, TIPO_FIXO,
    QUANTIDADE_MAXIMA_ITEM, ZERO, agora, arredondar, para_unidade_minima,
)
from desidratados.core.exceptions import (
    BaseErroCore,
    DadosInvalidosError,
    PermissaoNegadaError,
    ItemNaoEncontradoError,
    ProdutoNaoEncontradoError,
    PedidoNaoEncontradoError,
    CupomNaoEncontradoError,
    ItemIndisponivelError,
    EstoqueInsuficienteError,
    CarrinhoVazioError,
    CarrinhoInexistenteError,
    CupomInelegivelError,
    AssinaturaInvalidaError,
    PagamentoNaoCapturadoError,
    PagamentoDivergenteError,
    EstadoPedidoInvalidoError,
)

# Portas (Interfaces) - Importadas do desidratados/core/ports.py
from desidratados.core.ports import (
    IProdutoRepository,
    ICarrinhoRepository,
    ICupomRepository,
    IPedidoRepository,
    IConciliacaoRepository,
    IUsuarioRepository,
    IAvaliacaoRepository,
    IListaDesejosRepository,
    IGatewayPagamento,
    INotificacaoService,
)

logger = logging.getLogger(__name__)


def _validar_quantidade(quantidade) -> int:
    try:
        quantidade = int(quantidade)
    except (TypeError, ValueError):
        raise DadosInvalidosError("A quantidade deve ser um número inteiro.")
    if quantidade < 1 or quantidade > QUANTIDADE_MAXIMA_ITEM:
        raise DadosInvalidosError(f"A quantidade deve estar entre 1 e {QUANTIDADE_MAXIMA_ITEM}.")
    return quantidade


def _buscar_produto_e_variante(produto_repo: IProdutoRepository, produto_id, variante_id) -> Tuple[Produto, Variante]:
    """Carrega produto e variante, garantindo que ambos podem ser vendidos."""
    produto = produto_repo.buscar_por_id(produto_id)
    if not produto:
        raise ProdutoNaoEncontradoError(f"Produto ID {produto_id} não encontrado.")
    if not produto.ativo:
        raise ItemIndisponivelError(f"O produto {produto.nome} não está disponível.")
    variante = produto.buscar_variante(variante_id)
    if not variante:
        raise ItemNaoEncontradoError(f"Variante ID {variante_id} não encontrada para {produto.nome}.")
    if not variante.disponivel:
        raise ItemIndisponivelError(f"{produto.nome} ({variante.tamanho}) não está disponível.")
    return produto, variante


# ====================================================================
# 1. CASOS DE USO DO CATÁLOGO
# ====================================================================

class ListarProdutosUseCase:
    """Caso de Uso responsável por listar produtos com filtros e categorias."""
    def __init__(self, produto_repo: IProdutoRepository):
        self.produto_repo = produto_repo

    def listar_produtos(self, busca: Optional[str] = None, categoria_slug: Optional[str] = None) -> List[Produto]:
        return self.produto_repo.listar(busca=busca, categoria_slug=categoria_slug, apenas_ativos=True)

    def listar_categorias(self) -> List[Categoria]:
        return self.produto_repo.listar_categorias()

    def detalhar(self, identificador) -> Produto:
        """Aceita o ID numérico ou o slug do produto."""
        if str(identificador).isdigit():
            produto = self.produto_repo.buscar_por_id(identificador)
        else:
            produto = self.produto_repo.buscar_por_slug(identificador)
        if not produto or not produto.ativo:
            raise ProdutoNaoEncontradoError()
        return produto


# ====================================================================
# 2. CASOS DE USO DE CUPOM
# ====================================================================

class ValidarCupomUseCase:
    """Regras de elegibilidade e cálculo de desconto de um cupom para um carrinho."""
    def __init__(self, cupom_repo: ICupomRepository, pedido_repo: IPedidoRepository,
                 produto_repo: IProdutoRepository):
        self.cupom_repo = cupom_repo
        self.pedido_repo = pedido_repo
        self.produto_repo = produto_repo

    def _buscar_ativo(self, codigo: str) -> Cupom:
        cupom = self.cupom_repo.buscar_por_codigo((codigo or '').strip().upper())
        if not cupom:
            raise CupomNaoEncontradoError("Cupom inválido.")
        if not cupom.ativo:
            raise CupomInelegivelError("Cupom inválido.")
        return cupom

    def executar(self, codigo: str, usuario_id, carrinho: Carrinho) -> Tuple[Cupom, Decimal]:
        """Retorna (cupom, desconto) ou levanta o erro do primeiro critério que falhar."""
        if not carrinho.itens:
            raise CarrinhoVazioError()

        cupom = self._buscar_ativo(codigo)

        pedidos_pagos = self.pedido_repo.contar_pedidos_pagos(usuario_id) if cupom.apenas_primeiro_pedido else 0
        pode_usar, motivo = cupom.pode_ser_usado_por(usuario_id, pedidos_pagos)
        if not pode_usar:
            raise CupomInelegivelError(motivo)

        if cupom.produtos_aplicaveis or cupom.categorias_aplicaveis:
            pares = []
            for item in carrinho.itens:
                produto = self.produto_repo.buscar_por_id(item.produto_id)
                pares.append((item.produto_id, produto.categoria_id if produto else None))
            if not cupom.aplica_se_a(pares):
                raise CupomInelegivelError("Este cupom não se aplica aos itens do carrinho.")

        subtotal = sum((i.subtotal for i in carrinho.itens), ZERO)
        desconto, mensagem = cupom.calcular_desconto(subtotal)
        if mensagem:
            raise CupomInelegivelError(mensagem)
        if desconto <= 0:
            raise CupomInelegivelError("Este cupom não gera desconto para o carrinho atual.")
        return cupom, desconto

    def simular(self, codigo: str, subtotal: Decimal, usuario_id=None) -> Dict:
        """Validação pública (sem carrinho): informa o desconto que o cupom daria."""
        cupom = self._buscar_ativo(codigo)
        if usuario_id is not None:
            pedidos_pagos = self.pedido_repo.contar_pedidos_pagos(usuario_id) if cupom.apenas_primeiro_pedido else 0
            pode_usar, motivo = cupom.pode_ser_usado_por(usuario_id, pedidos_pagos)
        else:
            pode_usar = cupom.esta_valido()
            motivo = '' if pode_usar else "Cupom inválido ou expirado."
        if not pode_usar:
            raise CupomInelegivelError(motivo)
        desconto, mensagem = cupom.calcular_desconto(Decimal(subtotal))
        if mensagem:
            raise CupomInelegivelError(mensagem)
        return {'cupom': cupom, 'desconto': desconto}


class GerenciarCuponsAdminUseCase:
    """CRUD administrativo de cupons."""

    CAMPOS_EDITAVEIS = (
        'codigo', 'descricao', 'tipo_desconto', 'valor_desconto', 'compra_minima',
        'desconto_maximo', 'limite_uso', 'limite_uso_por_usuario', 'apenas_primeiro_pedido',
        'ativo', 'data_inicio', 'data_fim', 'produtos_aplicaveis', 'categorias_aplicaveis',
    )
    LIMITE_LOTE = 100

    def __init__(self, cupom_repo: ICupomRepository):
        self.cupom_repo = cupom_repo

    def listar(self, ativo: Optional[bool] = None, busca: Optional[str] = None) -> List[Cupom]:
        return self.cupom_repo.listar(ativo=ativo, busca=busca)

    def detalhar(self, cupom_id) -> Cupom:
        cupom = self.cupom_repo.buscar_por_id(cupom_id)
        if not cupom:
            raise CupomNaoEncontradoError("Cupom não encontrado.")
        return cupom

    @staticmethod
    def _validar(cupom: Cupom):
        if cupom.tipo_desconto not in (TIPO_PERCENTUAL, TIPO_FIXO):
            raise DadosInvalidosError("Tipo de desconto deve ser 'percentual' ou 'fixo'.")
        if cupom.valor_desconto <= 0:
            raise DadosInvalidosError("O valor do desconto deve ser positivo.")
        if cupom.tipo_desconto == TIPO_PERCENTUAL and cupom.valor_desconto > 100:
            raise DadosInvalidosError("Desconto percentual não pode passar de 100.")
        if cupom.data_fim <= cupom.data_inicio:
            raise DadosInvalidosError("A data final deve ser posterior à data inicial.")
        if cupom.limite_uso_por_usuario < 1:
            raise DadosInvalidosError("O limite de uso por usuário deve ser ao menos 1.")

    def criar(self, dados: Dict) -> Cupom:
        cupom = Cupom(**{k: v for k, v in dados.items() if k in self.CAMPOS_EDITAVEIS})
        self._validar(cupom)
        if self.cupom_repo.existe_codigo(cupom.codigo):
            raise DadosInvalidosError(f"Já existe um cupom com o código {cupom.codigo}.")
        return self.cupom_repo.salvar(cupom)

    def atualizar(self, cupom_id, dados: Dict) -> Cupom:
        cupom = self.detalhar(cupom_id)
        codigo_antigo = cupom.codigo
        for campo, valor in dados.items():
            if campo in self.CAMPOS_EDITAVEIS:
                setattr(cupom, campo, valor)
        cupom.codigo = cupom.codigo.strip().upper()
        self._validar(cupom)
        if cupom.codigo != codigo_antigo and self.cupom_repo.existe_codigo(cupom.codigo):
            raise DadosInvalidosError(f"Já existe um cupom com o código {cupom.codigo}.")
        return self.cupom_repo.salvar(cupom)

    def alternar_ativo(self, cupom_id) -> Cupom:
        cupom = self.detalhar(cupom_id)
        cupom.ativo = not cupom.ativo
        return self.cupom_repo.salvar(cupom)

    def deletar(self, cupom_id):
        self.detalhar(cupom_id)
        self.cupom_repo.deletar(cupom_id)

    def criar_em_lote(self, prefixo: str, quantidade: int, dados_base: Dict) -> List[Cupom]:
        """Gera `quantidade` cupons PREFIXO + 6 caracteres aleatórios com os mesmos termos."""
        if quantidade < 1 or quantidade > self.LIMITE_LOTE:
            raise DadosInvalidosError(f"A quantidade deve estar entre 1 e {self.LIMITE_LOTE}.")
        alfabeto = string.ascii_uppercase + string.digits
        criados = []
        while len(criados) < quantidade:
            codigo = f"{prefixo.upper()}{''.join(secrets.choice(alfabeto) for _ in range(6))}"
            if self.cupom_repo.existe_codigo(codigo):
                continue
            criados.append(self.criar({**dados_base, 'codigo': codigo}))
        return criados


# ====================================================================
# 3. CASOS DE USO DO CARRINHO
# ====================================================================

class GerenciarCarrinhoUseCase:
    """
    Caso de Uso que centraliza a lógica de gestão do carrinho.

    Os totais são recalculados pelo repositório a cada `salvar`.
    """
    def __init__(self, carrinho_repo: ICarrinhoRepository, produto_repo: IProdutoRepository,
                 validar_cupom: ValidarCupomUseCase):
        self.carrinho_repo = carrinho_repo
        self.produto_repo = produto_repo
        self.validar_cupom = validar_cupom

    def obter_carrinho(self, usuario_id) -> Carrinho:
        """Busca o carrinho existente ou cria um novo para o usuário."""
        return self.carrinho_repo.buscar_ou_criar(usuario_id)

    def _carrinho_existente(self, usuario_id) -> Carrinho:
        carrinho = self.carrinho_repo.buscar_por_usuario(usuario_id)
        if not carrinho:
            raise CarrinhoInexistenteError()
        return carrinho

    def adicionar_item(self, usuario_id, produto_id, variante_id, quantidade: int = 1) -> Carrinho:
        """Adiciona ou incrementa um item no carrinho, verificando estoque."""
        quantidade = _validar_quantidade(quantidade)
        produto, variante = _buscar_produto_e_variante(self.produto_repo, produto_id, variante_id)

        carrinho = self.carrinho_repo.buscar_ou_criar(usuario_id)
        item = carrinho.buscar_item(produto.id, variante.id)
        nova_quantidade = quantidade + (item.quantidade if item else 0)
        if nova_quantidade > QUANTIDADE_MAXIMA_ITEM:
            raise DadosInvalidosError(f"Máximo de {QUANTIDADE_MAXIMA_ITEM} unidades por item.")
        if variante.estoque < nova_quantidade:
            raise EstoqueInsuficienteError(disponivel=variante.estoque, nome_item=produto.nome)

        if item:
            item.quantidade = nova_quantidade
        else:
            carrinho.itens.append(ItemCarrinho(
                produto_id=produto.id,
                variante_id=variante.id,
                quantidade=quantidade,
                preco_unitario=variante.preco,
                nome=produto.nome,
                tamanho=variante.tamanho,
                peso=variante.peso,
                unidade_peso=variante.unidade_peso,
                imagem=produto.imagem,
            ))
        return self.carrinho_repo.salvar(carrinho)

    def atualizar_quantidade(self, usuario_id, produto_id, variante_id, quantidade: int) -> Carrinho:
        quantidade = _validar_quantidade(quantidade)
        carrinho = self._carrinho_existente(usuario_id)
        item = carrinho.buscar_item(produto_id, variante_id)
        if not item:
            raise ItemNaoEncontradoError("Item não encontrado no carrinho.")

        produto, variante = _buscar_produto_e_variante(self.produto_repo, produto_id, variante_id)
        if variante.estoque < quantidade:
            raise EstoqueInsuficienteError(disponivel=variante.estoque, nome_item=produto.nome)

        item.quantidade = quantidade
        return self.carrinho_repo.salvar(carrinho)

    def remover_item(self, usuario_id, produto_id, variante_id) -> Carrinho:
        """Remove um item do carrinho completamente."""
        carrinho = self._carrinho_existente(usuario_id)
        if not carrinho.remover_item(produto_id, variante_id):
            raise ItemNaoEncontradoError("Item não encontrado no carrinho.")
        return self.carrinho_repo.salvar(carrinho)

    def limpar(self, usuario_id) -> Carrinho:
        carrinho = self.carrinho_repo.buscar_ou_criar(usuario_id)
        carrinho.limpar()
        return self.carrinho_repo.salvar(carrinho)

    def aplicar_cupom(self, usuario_id, codigo: str) -> Carrinho:
        carrinho = self.carrinho_repo.buscar_por_usuario(usuario_id)
        if not carrinho or not carrinho.itens:
            raise CarrinhoVazioError()
        cupom, _ = self.validar_cupom.executar(codigo, usuario_id, carrinho)
        carrinho.cupom = cupom.para_carrinho()
        logger.info("Cupom %s aplicado ao carrinho %s (usuário %s)", cupom.codigo, carrinho.id, usuario_id)
        return self.carrinho_repo.salvar(carrinho)

    def remover_cupom(self, usuario_id) -> Carrinho:
        carrinho = self._carrinho_existente(usuario_id)
        carrinho.cupom = None
        return self.carrinho_repo.salvar(carrinho)

    def validar_carrinho(self, usuario_id) -> Dict:
        """
        Confere o carrinho contra o catálogo atual: remove itens indisponíveis,
        ajusta quantidades ao estoque e atualiza preços alterados.
        """
        carrinho = self.carrinho_repo.buscar_ou_criar(usuario_id)
        problemas = []
        for item in list(carrinho.itens):
            produto = self.produto_repo.buscar_por_id(item.produto_id)
            if not produto or not produto.ativo:
                carrinho.itens.remove(item)
                problemas.append({'tipo': 'indisponivel', 'produto_id': item.produto_id, 'nome': item.nome})
                continue
            variante = produto.buscar_variante(item.variante_id)
            if not variante or not variante.disponivel:
                carrinho.itens.remove(item)
                problemas.append({'tipo': 'variante_indisponivel', 'produto_id': item.produto_id,
                                  'variante_id': item.variante_id, 'nome': item.nome})
                continue
            if variante.estoque < item.quantidade:
                problemas.append({'tipo': 'estoque_insuficiente', 'produto_id': item.produto_id,
                                  'variante_id': item.variante_id, 'nome': item.nome,
                                  'disponivel': variante.estoque})
                if variante.estoque == 0:
                    carrinho.itens.remove(item)
                    continue
                item.quantidade = variante.estoque
            if variante.preco != item.preco_unitario:
                problemas.append({'tipo': 'preco_alterado', 'produto_id': item.produto_id,
                                  'variante_id': item.variante_id, 'nome': item.nome,
                                  'preco_anterior': str(item.preco_unitario), 'preco_atual': str(variante.preco)})
                item.preco_unitario = variante.preco

        if problemas:
            carrinho = self.carrinho_repo.salvar(carrinho)
        return {'carrinho': carrinho, 'problemas': problemas, 'valido': not problemas}

    def mesclar_carrinho(self, usuario_id, itens: List[Dict]) -> Carrinho:
        """Mescla itens de um carrinho de visitante, limitando ao estoque e ignorando indisponíveis."""
        carrinho = self.carrinho_repo.buscar_ou_criar(usuario_id)
        for dados in itens:
            try:
                produto, variante = _buscar_produto_e_variante(
                    self.produto_repo, dados.get('produto_id'), dados.get('variante_id'))
            except (ItemNaoEncontradoError, ItemIndisponivelError):
                continue
            item = carrinho.buscar_item(produto.id, variante.id)
            atual = item.quantidade if item else 0
            quantidade = min(atual + int(dados.get('quantidade', 1)), variante.estoque, QUANTIDADE_MAXIMA_ITEM)
            if quantidade <= 0:
                continue
            if item:
                item.quantidade = quantidade
            else:
                carrinho.itens.append(ItemCarrinho(
                    produto_id=produto.id, variante_id=variante.id, quantidade=quantidade,
                    preco_unitario=variante.preco, nome=produto.nome, tamanho=variante.tamanho,
                    peso=variante.peso, unidade_peso=variante.unidade_peso, imagem=produto.imagem,
                ))
        return self.carrinho_repo.salvar(carrinho)


# ====================================================================
# 4. CASOS DE USO DE CHECKOUT E PAGAMENTO
# ====================================================================

class CheckoutUseCase:
    """
    Coordena o checkout: criação do pedido no gateway, verificação do
    pagamento assinado e conversão atômica do carrinho em pedido.
    """
    def __init__(self,
                 carrinho_repo: ICarrinhoRepository,
                 produto_repo: IProdutoRepository,
                 pedido_repo: IPedidoRepository,
                 conciliacao_repo: IConciliacaoRepository,
                 usuario_repo: IUsuarioRepository,
                 pagamento_gateway: IGatewayPagamento,
                 notificacao_service: INotificacaoService,
                 parametros: Optional[ParametrosLoja] = None):

        self.carrinho_repo = carrinho_repo
        self.produto_repo = produto_repo
        self.pedido_repo = pedido_repo
        self.conciliacao_repo = conciliacao_repo
        self.usuario_repo = usuario_repo
        self.pagamento_gateway = pagamento_gateway
        self.notificacao_service = notificacao_service
        self.parametros = parametros or ParametrosLoja()

    @staticmethod
    def _validar_entrega(tipo_entrega: str, endereco: Optional[EnderecoEntrega]):
        if tipo_entrega not in TIPOS_ENTREGA:
            raise DadosInvalidosError("Tipo de entrega inválido.")
        if tipo_entrega == ENTREGA_DOMICILIO and not endereco:
            raise DadosInvalidosError("Endereço de entrega é obrigatório para entrega a domicílio.")

    def _validar_itens(self, carrinho: Carrinho):
        for item in carrinho.itens:
            produto = self.produto_repo.buscar_por_id(item.produto_id)
            if not produto or not produto.ativo:
                raise ItemIndisponivelError(f"{item.nome} não está mais disponível.")
            variante = produto.buscar_variante(item.variante_id)
            if not variante or not variante.disponivel:
                raise ItemIndisponivelError(f"{item.nome} ({item.tamanho}) não está mais disponível.")
            if variante.estoque < item.quantidade:
                raise EstoqueInsuficienteError(disponivel=variante.estoque, nome_item=item.nome)

    def criar_pedido_gateway(self, usuario_id, tipo_entrega: str,
                             endereco: Optional[EnderecoEntrega] = None) -> Dict:
        """Valida o carrinho e abre um pedido no gateway. Nenhum estado local é alterado."""
        self._validar_entrega(tipo_entrega, endereco)

        carrinho = self.carrinho_repo.buscar_por_usuario(usuario_id)
        if not carrinho or not carrinho.itens:
            raise CarrinhoVazioError()
        self._validar_itens(carrinho)

        valor = para_unidade_minima(carrinho.total)
        notas = {
            'usuario_id': str(usuario_id),
            'carrinho_id': str(carrinho.id),
            'tipo_entrega': tipo_entrega,
            'endereco_entrega': json.dumps(asdict(endereco)) if endereco else '',
        }
        recibo = f"recibo_{carrinho.id}_{int(agora().timestamp())}"
        pedido_gateway = self.pagamento_gateway.criar_pedido(valor, self.parametros.moeda, recibo, notas)
        logger.info("Pedido %s criado no gateway para o carrinho %s (valor=%s)",
                    pedido_gateway['id'], carrinho.id, valor)

        return {
            'gateway_pedido_id': pedido_gateway['id'],
            'valor': pedido_gateway.get('amount', valor),
            'moeda': pedido_gateway.get('currency', self.parametros.moeda),
            'chave_publica': self.parametros.chave_publica_gateway,
            'carrinho_id': carrinho.id,
        }

    def verificar_pagamento(self,
                            usuario_id,
                            gateway_pedido_id: str,
                            gateway_pagamento_id: str,
                            assinatura: str,
                            carrinho_id,
                            tipo_entrega: str = ENTREGA_DOMICILIO,
                            endereco: Optional[EnderecoEntrega] = None) -> Pedido:
        """
        Verifica a assinatura e o status no gateway e converte o carrinho em pedido.

        Repetir a chamada para um pagamento já convertido devolve o mesmo pedido.
        """
        if not self.pagamento_gateway.verificar_assinatura(gateway_pedido_id, gateway_pagamento_id, assinatura):
            logger.warning(
                "Assinatura de pagamento inválida (usuário=%s, pedido_gateway=%s, pagamento=%s)",
                usuario_id, gateway_pedido_id, gateway_pagamento_id,
            )
            raise AssinaturaInvalidaError()

        existente = self.pedido_repo.buscar_por_pagamento_id(gateway_pagamento_id)
        if existente:
            if str(existente.usuario_id) != str(usuario_id):
                raise PermissaoNegadaError()
            return existente

        pagamento = self.pagamento_gateway.buscar_pagamento(gateway_pagamento_id)
        if pagamento.get('status') != 'captured':
            raise PagamentoNaoCapturadoError(
                f"Pagamento não capturado (status no gateway: {pagamento.get('status')}).")
        if pagamento.get('order_id') and pagamento['order_id'] != gateway_pedido_id:
            raise PagamentoDivergenteError("O pagamento não pertence a este pedido do gateway.")

        self._validar_entrega(tipo_entrega, endereco)
        self.conciliacao_repo.registrar_captura(RegistroConciliacao(
            gateway_pagamento_id=gateway_pagamento_id,
            gateway_pedido_id=gateway_pedido_id,
            carrinho_id=carrinho_id,
            usuario_id=usuario_id,
            assinatura=assinatura,
            tipo_entrega=tipo_entrega,
            endereco_entrega=asdict(endereco) if endereco else None,
        ))

        try:
            carrinho = self.carrinho_repo.buscar_por_id(carrinho_id)
            if not carrinho:
                raise CarrinhoInexistenteError()
            if str(carrinho.usuario_id) != str(usuario_id):
                raise PermissaoNegadaError("O carrinho não pertence a este usuário.")
            if 'amount' in pagamento and int(pagamento['amount']) != para_unidade_minima(carrinho.total):
                raise PagamentoDivergenteError("O valor pago não corresponde ao total do carrinho.")

            pedido = self._converter(carrinho_id, gateway_pedido_id, gateway_pagamento_id, assinatura,
                                     tipo_entrega, endereco, carrinho.total)
        except BaseErroCore as e:
            self.conciliacao_repo.marcar_falha(gateway_pagamento_id, e.message)
            logger.error(
                "Pagamento %s capturado mas não convertido (usuário=%s, carrinho=%s, pedido_gateway=%s): %s",
                gateway_pagamento_id, usuario_id, carrinho_id, gateway_pedido_id, e.message,
            )
            raise

        self._notificar_confirmacao(pedido)
        return pedido

    def _converter(self, carrinho_id, gateway_pedido_id, gateway_pagamento_id, assinatura,
                   tipo_entrega, endereco, total_esperado: Decimal) -> Pedido:
        dados_pagamento = PagamentoPedido(
            metodo='razorpay',
            status='concluido',
            gateway_pedido_id=gateway_pedido_id,
            gateway_pagamento_id=gateway_pagamento_id,
            gateway_assinatura=assinatura,
            pago_em=agora(),
        )
        pedido = self.pedido_repo.converter_carrinho(
            carrinho_id=carrinho_id,
            pagamento=dados_pagamento,
            endereco=endereco,
            tipo_entrega=tipo_entrega,
            total_esperado=total_esperado,
            prefixo=self.parametros.prefixo_numero_pedido,
        )
        self.conciliacao_repo.marcar_convertido(gateway_pagamento_id, pedido.id)
        logger.info("Pedido %s (%s) criado a partir do carrinho %s, pagamento %s",
                    pedido.numero_pedido, pedido.id, carrinho_id, gateway_pagamento_id)
        return pedido

    def _notificar_confirmacao(self, pedido: Pedido):
        try:
            usuario = self.usuario_repo.buscar_por_id(pedido.usuario_id)
            if usuario:
                self.notificacao_service.enviar_confirmacao_pedido(pedido, usuario)
        except Exception:
            logger.exception("Falha ao enviar confirmação do pedido %s", pedido.numero_pedido)

    def conciliar_pendentes(self, criado_antes_de: Optional[datetime] = None) -> Dict[str, int]:
        """
        Reprocessa pagamentos capturados que ficaram sem pedido.
        Usado pelo comando `conciliar_pagamentos`.
        """
        resumo = {'convertidos': 0, 'ja_convertidos': 0, 'falhas': 0}
        for registro in self.conciliacao_repo.listar_pendentes(criado_antes_de):
            existente = self.pedido_repo.buscar_por_pagamento_id(registro.gateway_pagamento_id)
            if existente:
                self.conciliacao_repo.marcar_convertido(registro.gateway_pagamento_id, existente.id)
                resumo['ja_convertidos'] += 1
                continue
            try:
                pagamento = self.pagamento_gateway.buscar_pagamento(registro.gateway_pagamento_id)
                if pagamento.get('status') != 'captured':
                    raise PagamentoNaoCapturadoError()
                total_pago = (Decimal(int(pagamento['amount'])) / 100).quantize(Decimal('0.01'))
                if registro.carrinho_id is None:
                    raise CarrinhoInexistenteError()
                pedido = self._converter(
                    registro.carrinho_id, registro.gateway_pedido_id, registro.gateway_pagamento_id,
                    registro.assinatura, registro.tipo_entrega,
                    EnderecoEntrega.from_dict(registro.endereco_entrega), total_pago,
                )
            except BaseErroCore as e:
                self.conciliacao_repo.marcar_falha(registro.gateway_pagamento_id, e.message)
                logger.error("Conciliação do pagamento %s falhou: %s", registro.gateway_pagamento_id, e.message)
                resumo['falhas'] += 1
                continue
            self._notificar_confirmacao(pedido)
            resumo['convertidos'] += 1
        return resumo

    def processar_webhook(self, corpo: bytes, assinatura: Optional[str]) -> Dict:
        """Valida a assinatura do webhook e trata os eventos conhecidos."""
        if not assinatura or not self.pagamento_gateway.verificar_assinatura_webhook(corpo, assinatura):
            logger.warning("Webhook com assinatura ausente ou inválida recebido")
            raise AssinaturaInvalidaError("Assinatura do webhook inválida.")

        try:
            evento = json.loads(corpo)
        except (TypeError, ValueError):
            raise DadosInvalidosError("Corpo do webhook não é um JSON válido.")

        tipo = evento.get('event')
        payload = evento.get('payload', {})

        if tipo == 'payment.captured':
            self._webhook_pagamento_capturado(payload.get('payment', {}).get('entity', {}))
        elif tipo == 'payment.failed':
            entidade = payload.get('payment', {}).get('entity', {})
            logger.warning("Pagamento %s falhou no gateway: %s",
                           entidade.get('id'), entidade.get('error_description'))
        elif tipo in ('refund.created', 'refund.processed', 'refund.failed'):
            entidade = payload.get('refund', {}).get('entity', {})
            logger.info("Evento %s para o reembolso %s (pagamento %s)",
                        tipo, entidade.get('id'), entidade.get('payment_id'))
        elif tipo == 'order.paid':
            entidade = payload.get('order', {}).get('entity', {})
            logger.info("Pedido %s pago no gateway", entidade.get('id'))
        else:
            logger.info("Evento de webhook não tratado: %s", tipo)

        return {'recebido': True}

    def _webhook_pagamento_capturado(self, entidade: Dict):
        pagamento_id = entidade.get('id')
        if not pagamento_id or self.pedido_repo.buscar_por_pagamento_id(pagamento_id):
            return
        logger.warning("Pagamento %s capturado sem pedido correspondente", pagamento_id)
        if self.conciliacao_repo.buscar_por_pagamento_id(pagamento_id):
            return
        notas = entidade.get('notes') or {}
        if not notas.get('carrinho_id') or not notas.get('usuario_id'):
            return
        try:
            endereco = json.loads(notas['endereco_entrega']) if notas.get('endereco_entrega') else None
            carrinho_id = int(notas['carrinho_id'])
            usuario_id = int(notas['usuario_id'])
        except (TypeError, ValueError):
            logger.error("Notas malformadas no pagamento %s; captura não registrada: %r", pagamento_id, notas)
            return
        self.conciliacao_repo.registrar_captura(RegistroConciliacao(
            gateway_pagamento_id=pagamento_id,
            gateway_pedido_id=entidade.get('order_id', ''),
            carrinho_id=carrinho_id,
            usuario_id=usuario_id,
            tipo_entrega=notas.get('tipo_entrega') or ENTREGA_DOMICILIO,
            endereco_entrega=endereco,
        ))


class ReembolsoUseCase:
    """Reembolso total ou parcial de um pedido pago."""
    def __init__(self, pedido_repo: IPedidoRepository, pagamento_gateway: IGatewayPagamento):
        self.pedido_repo = pedido_repo
        self.pagamento_gateway = pagamento_gateway

    def executar(self, pedido_id, solicitante: Usuario, valor=None, motivo: str = '') -> Pedido:
        pedido = self.pedido_repo.buscar_por_id(pedido_id)
        if not pedido:
            raise PedidoNaoEncontradoError()
        if not solicitante.is_admin and str(pedido.usuario_id) != str(solicitante.id):
            raise PermissaoNegadaError()
        if not pedido.pode_ser_reembolsado:
            raise EstadoPedidoInvalidoError("Este pedido não pode ser reembolsado.")

        restante = pedido.valor_reembolsavel
        try:
            valor = restante if valor in (None, '') else arredondar(Decimal(str(valor)))
        except InvalidOperation:
            raise DadosInvalidosError("Valor de reembolso inválido.")
        if valor <= 0 or valor > restante:
            raise DadosInvalidosError(f"Valor de reembolso inválido. Máximo reembolsável: {restante}.")

        motivo = motivo or "Solicitado pelo cliente"
        reembolso = self.pagamento_gateway.criar_reembolso(
            pedido.pagamento.gateway_pagamento_id,
            para_unidade_minima(valor),
            {'pedido_id': str(pedido.id), 'numero_pedido': pedido.numero_pedido, 'motivo': motivo},
        )
        observacao = f"Reembolso de {valor} processado. Motivo: {motivo}"

        def registrar(atual: Pedido):
            # `atual` é a linha relida sob trava
            atual.pagamento.reembolso_id = reembolso.get('id')
            atual.pagamento.valor_reembolsado = arredondar(atual.pagamento.valor_reembolsado + valor)
            if atual.pagamento.valor_reembolsado >= atual.total:
                atual.pagamento.status = 'reembolsado'
                atual.registrar_status('reembolsado', observacao, solicitante.id)
            else:
                atual.pagamento.status = 'parcialmente_reembolsado'
                atual.historico.append(HistoricoStatus(status=atual.status, observacao=observacao,
                                                       atualizado_por=solicitante.id))

        logger.info("Reembolso %s de %s no pedido %s", reembolso.get('id'), valor, pedido.numero_pedido)
        return self.pedido_repo.atualizar_com_trava(pedido.id, registrar)


# ====================================================================
# 5. CASOS DE USO DE PEDIDOS
# ====================================================================

class GerenciarPedidoClienteUseCase:
    """Consulta, cancelamento e devolução de pedidos pelo próprio cliente."""
    def __init__(self, pedido_repo: IPedidoRepository, parametros: Optional[ParametrosLoja] = None):
        self.pedido_repo = pedido_repo
        self.parametros = parametros or ParametrosLoja()

    def listar(self, usuario_id, status: Optional[str] = None) -> List[Pedido]:
        return self.pedido_repo.listar_por_usuario(usuario_id, status=status)

    @staticmethod
    def _checar_dono(pedido: Optional[Pedido], usuario: Usuario, permitir_admin: bool = True) -> Pedido:
        if not pedido:
            raise PedidoNaoEncontradoError()
        if str(pedido.usuario_id) != str(usuario.id) and not (permitir_admin and usuario.is_admin):
            raise PermissaoNegadaError("Você não tem permissão para acessar este pedido.")
        return pedido

    def detalhar(self, pedido_id, usuario: Usuario) -> Pedido:
        return self._checar_dono(self.pedido_repo.buscar_por_id(pedido_id), usuario)

    def buscar_por_numero(self, numero_pedido: str, usuario: Usuario) -> Pedido:
        return self._checar_dono(self.pedido_repo.buscar_por_numero(numero_pedido), usuario)

    def cancelar(self, pedido_id, usuario: Usuario, motivo: str = '') -> Pedido:
        """Cancela o pedido e devolve o estoque de cada item."""
        pedido = self._checar_dono(self.pedido_repo.buscar_por_id(pedido_id), usuario, permitir_admin=False)
        self._checar_cancelavel(pedido)

        def aplicar(atual: Pedido):
            self._checar_cancelavel(atual)
            atual.motivo_cancelamento = motivo
            atual.registrar_status('cancelado', motivo or "Cancelado pelo cliente", usuario.id)

        pedido = self.pedido_repo.cancelar(pedido.id, aplicar)
        logger.info("Pedido %s cancelado pelo cliente %s", pedido.numero_pedido, usuario.id)
        return pedido

    @staticmethod
    def _checar_cancelavel(pedido: Pedido):
        if not pedido.pode_ser_cancelado:
            raise EstadoPedidoInvalidoError("O pedido não pode mais ser cancelado nesta etapa.")

    def solicitar_devolucao(self, pedido_id, usuario: Usuario, motivo: str = '') -> Pedido:
        pedido = self._checar_dono(self.pedido_repo.buscar_por_id(pedido_id), usuario, permitir_admin=False)
        self._checar_devolvivel(pedido)

        def aplicar(atual: Pedido):
            self._checar_devolvivel(atual)
            momento = agora()
            atual.motivo_devolucao = motivo
            atual.devolucao_solicitada_em = momento
            atual.registrar_status('devolucao_solicitada', f"Devolução solicitada: {motivo}", usuario.id, momento)

        return self.pedido_repo.atualizar_com_trava(pedido.id, aplicar)

    def _checar_devolvivel(self, pedido: Pedido):
        if pedido.status != 'entregue':
            raise EstadoPedidoInvalidoError("Apenas pedidos entregues podem ser devolvidos.")
        dias = self.parametros.dias_janela_devolucao
        if not pedido.pode_solicitar_devolucao(dias):
            raise EstadoPedidoInvalidoError(f"O prazo de devolução de {dias} dias expirou.")


class GerenciarPedidosAdminUseCase:
    """Gestão de pedidos pelo administrador (status, rastreamento e notas internas)."""

    CAMPOS_RASTREAMENTO = ('transportadora', 'codigo_rastreio', 'url_rastreio', 'previsao_entrega')

    def __init__(self, pedido_repo: IPedidoRepository, usuario_repo: IUsuarioRepository,
                 notificacao_service: INotificacaoService):
        self.pedido_repo = pedido_repo
        self.usuario_repo = usuario_repo
        self.notificacao_service = notificacao_service

    def listar(self, **filtros) -> List[Pedido]:
        return self.pedido_repo.listar_todos(**filtros)

    def detalhar(self, pedido_id) -> Pedido:
        pedido = self.pedido_repo.buscar_por_id(pedido_id)
        if not pedido:
            raise PedidoNaoEncontradoError()
        return pedido

    def atualizar_status(self, pedido_id, novo_status: str, observacao: str = '', admin_id=None) -> Pedido:
        if novo_status not in STATUS_PEDIDO:
            raise EstadoPedidoInvalidoError(f"Status inválido: {novo_status}.")
        pedido = self.pedido_repo.atualizar_com_trava(
            pedido_id, lambda atual: atual.registrar_status(novo_status, observacao, admin_id)
        )
        logger.info("Pedido %s movido para %s pelo admin %s", pedido.numero_pedido, novo_status, admin_id)

        if novo_status == 'enviado':
            try:
                usuario = self.usuario_repo.buscar_por_id(pedido.usuario_id)
                if usuario:
                    self.notificacao_service.enviar_notificacao_envio(pedido, usuario)
            except Exception:
                logger.exception("Falha ao enviar notificação de envio do pedido %s", pedido.numero_pedido)
        return pedido

    def atualizar_rastreamento(self, pedido_id, dados: Dict) -> Pedido:
        def aplicar(atual: Pedido):
            for campo in self.CAMPOS_RASTREAMENTO:
                if campo in dados:
                    setattr(atual.rastreamento, campo, dados[campo])

        return self.pedido_repo.atualizar_com_trava(pedido_id, aplicar)

    def atualizar_observacoes(self, pedido_id, observacoes: str) -> Pedido:
        def aplicar(atual: Pedido):
            atual.observacoes_internas = observacoes

        return self.pedido_repo.atualizar_com_trava(pedido_id, aplicar)


# ====================================================================
# 6. AVALIAÇÕES
# ====================================================================

class AvaliacoesUseCase:
    """Avaliações de produtos e manutenção da nota média do produto."""
    def __init__(self, avaliacao_repo: IAvaliacaoRepository, produto_repo: IProdutoRepository,
                 pedido_repo: IPedidoRepository):
        self.avaliacao_repo = avaliacao_repo
        self.produto_repo = produto_repo
        self.pedido_repo = pedido_repo

    @staticmethod
    def _validar_nota(nota) -> int:
        try:
            nota = int(nota)
        except (TypeError, ValueError):
            raise DadosInvalidosError("A nota deve ser um número de 1 a 5.")
        if not 1 <= nota <= 5:
            raise DadosInvalidosError("A nota deve ser um número de 1 a 5.")
        return nota

    def _atualizar_media(self, produto_id):
        notas = self.avaliacao_repo.notas_aprovadas(produto_id)
        media = ZERO
        if notas:
            media = (Decimal(sum(notas)) / len(notas)).quantize(Decimal('0.1'), rounding=ROUND_HALF_UP)
        self.produto_repo.atualizar_avaliacao(produto_id, media, len(notas))

    def _buscar(self, avaliacao_id) -> Avaliacao:
        avaliacao = self.avaliacao_repo.buscar_por_id(avaliacao_id)
        if not avaliacao:
            raise ItemNaoEncontradoError("Avaliação não encontrada.")
        return avaliacao

    def listar(self, produto_id) -> List[Avaliacao]:
        return self.avaliacao_repo.listar_por_produto(produto_id, apenas_aprovadas=True)

    def listar_pendentes(self) -> List[Avaliacao]:
        return self.avaliacao_repo.listar_pendentes()

    def criar(self, usuario_id, produto_id, nota, titulo: str = '', comentario: str = '') -> Avaliacao:
        if not self.produto_repo.buscar_por_id(produto_id):
            raise ProdutoNaoEncontradoError()
        if self.avaliacao_repo.buscar_do_usuario(produto_id, usuario_id):
            raise DadosInvalidosError("Você já avaliou este produto.")

        avaliacao = self.avaliacao_repo.salvar(Avaliacao(
            produto_id=produto_id,
            usuario_id=usuario_id,
            nota=self._validar_nota(nota),
            titulo=titulo,
            comentario=comentario,
            compra_verificada=self.pedido_repo.usuario_comprou_produto(usuario_id, produto_id),
        ))
        self._atualizar_media(produto_id)
        return avaliacao

    def atualizar(self, avaliacao_id, usuario: Usuario, dados: Dict) -> Avaliacao:
        avaliacao = self._buscar(avaliacao_id)
        if str(avaliacao.usuario_id) != str(usuario.id):
            raise PermissaoNegadaError("Você não pode alterar esta avaliação.")
        if 'nota' in dados:
            avaliacao.nota = self._validar_nota(dados['nota'])
        avaliacao.titulo = dados.get('titulo', avaliacao.titulo)
        avaliacao.comentario = dados.get('comentario', avaliacao.comentario)
        avaliacao = self.avaliacao_repo.salvar(avaliacao)
        self._atualizar_media(avaliacao.produto_id)
        return avaliacao

    def remover(self, avaliacao_id, usuario: Usuario):
        avaliacao = self._buscar(avaliacao_id)
        if str(avaliacao.usuario_id) != str(usuario.id) and not usuario.is_admin:
            raise PermissaoNegadaError("Você não pode remover esta avaliação.")
        self.avaliacao_repo.deletar(avaliacao_id)
        self._atualizar_media(avaliacao.produto_id)

    def aprovar(self, avaliacao_id) -> Avaliacao:
        avaliacao = self._buscar(avaliacao_id)
        avaliacao.aprovada = True
        avaliacao = self.avaliacao_repo.salvar(avaliacao)
        self._atualizar_media(avaliacao.produto_id)
        return avaliacao


# ====================================================================
# 7. LISTA DE DESEJOS
# ====================================================================

class ListaDesejosUseCase:
    def __init__(self, lista_repo: IListaDesejosRepository, produto_repo: IProdutoRepository,
                 carrinho_uc: GerenciarCarrinhoUseCase):
        self.lista_repo = lista_repo
        self.produto_repo = produto_repo
        self.carrinho_uc = carrinho_uc

    def obter(self, usuario_id) -> ListaDesejos:
        return self.lista_repo.buscar_ou_criar(usuario_id)

    def adicionar(self, usuario_id, produto_id, variante_id=None) -> ListaDesejos:
        produto = self.produto_repo.buscar_por_id(produto_id)
        if not produto or not produto.ativo:
            raise ProdutoNaoEncontradoError()
        if self.lista_repo.buscar_ou_criar(usuario_id).contem(produto_id):
            raise DadosInvalidosError("Produto já está na lista de desejos.")
        return self.lista_repo.adicionar(usuario_id, produto_id, variante_id)

    def remover(self, usuario_id, produto_id) -> ListaDesejos:
        if not self.lista_repo.buscar_ou_criar(usuario_id).contem(produto_id):
            raise ItemNaoEncontradoError("Produto não está na lista de desejos.")
        return self.lista_repo.remover(usuario_id, produto_id)

    def limpar(self, usuario_id) -> ListaDesejos:
        return self.lista_repo.limpar(usuario_id)

    def mover_para_carrinho(self, usuario_id, produto_id, variante_id=None, quantidade: int = 1) -> Carrinho:
        lista = self.lista_repo.buscar_ou_criar(usuario_id)
        item = next((i for i in lista.itens if str(i.produto_id) == str(produto_id)), None)
        if not item:
            raise ItemNaoEncontradoError("Produto não está na lista de desejos.")

        variante_id = variante_id or item.variante_id
        if not variante_id:
            produto = self.produto_repo.buscar_por_id(produto_id)
            disponivel = next((v for v in produto.variantes if v.disponivel and v.estoque > 0), None) if produto else None
            if not disponivel:
                raise ItemIndisponivelError("Nenhuma variante deste produto está disponível.")
            variante_id = disponivel.id

        carrinho = self.carrinho_uc.adicionar_item(usuario_id, produto_id, variante_id, quantidade)
        self.lista_repo.remover(usuario_id, produto_id)
        return carrinho
