import secrets
import string
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Dict, Tuple, Iterable

# ====================================================================
# CONSTANTES DE DOMÍNIO
# ====================================================================

CENTAVOS = Decimal('0.01')
ZERO = Decimal('0.00')

TAXA_IMPOSTO_PADRAO = Decimal('0.18')
LIMITE_FRETE_GRATIS_PADRAO = Decimal('500')
CUSTO_FRETE_PADRAO = Decimal('49')
QUANTIDADE_MAXIMA_ITEM = 99

TIPO_PERCENTUAL = 'percentual'
TIPO_FIXO = 'fixo'

ENTREGA_DOMICILIO = 'entrega_domicilio'
RETIRADA_LOJA = 'retirada_loja'
TIPOS_ENTREGA = (ENTREGA_DOMICILIO, RETIRADA_LOJA)

STATUS_PEDIDO = (
    'pendente',
    'confirmado',
    'processando',
    'enviado',
    'saiu_para_entrega',
    'entregue',
    'cancelado',
    'reembolsado',
    'devolucao_solicitada',
    'devolvido',
)

STATUS_PAGAMENTO = (
    'pendente',
    'processando',
    'concluido',
    'falhou',
    'reembolsado',
    'parcialmente_reembolsado',
)

# Depois que o pedido sai do depósito o cliente não pode mais cancelar.
STATUS_SEM_CANCELAMENTO = frozenset({
    'enviado',
    'saiu_para_entrega',
    'entregue',
    'cancelado',
    'reembolsado',
    'devolucao_solicitada',
    'devolvido',
})


def agora() -> datetime:
    """Data/hora atual com fuso (UTC)."""
    return datetime.now(timezone.utc)


def arredondar(valor) -> Decimal:
    """Arredonda para 2 casas decimais, meio para cima."""
    return Decimal(valor).quantize(CENTAVOS, rounding=ROUND_HALF_UP)


def para_unidade_minima(valor: Decimal) -> int:
    """Converte um valor monetário (ex: 705.64) para a menor unidade da moeda (70564)."""
    return int((Decimal(valor) * 100).quantize(Decimal('1'), rounding=ROUND_HALF_UP))


# ====================================================================
# CONFIGURAÇÃO DA LOJA
# ====================================================================

@dataclass(frozen=True)
class ParametrosLoja:
    """Parâmetros de negócio lidos da configuração e injetados nos casos de uso."""
    moeda: str = 'INR'
    taxa_imposto: Decimal = TAXA_IMPOSTO_PADRAO
    limite_frete_gratis: Decimal = LIMITE_FRETE_GRATIS_PADRAO
    custo_frete: Decimal = CUSTO_FRETE_PADRAO
    dias_expiracao_carrinho: int = 7
    dias_janela_devolucao: int = 7
    prefixo_numero_pedido: str = 'DF'
    chave_publica_gateway: str = ''


# ====================================================================
# ENTIDADES CORE
# Representam os objetos de negócio puros.
# ====================================================================

@dataclass
class Usuario:
    """Entidade do Usuário, usada como referência para pedidos/carrinhos."""
    id: int
    email: str = ''
    nome: str = ''
    is_admin: bool = False


@dataclass
class Categoria:
    """Entidade de Categoria de produtos."""
    nome: str
    slug: str
    descricao: str = ''
    ativa: bool = True
    id: Optional[int] = None


@dataclass
class Variante:
    """Tamanho/embalagem vendável de um produto (ex: 250 g)."""
    id: int
    tamanho: str
    peso: Decimal
    unidade_peso: str
    preco: Decimal
    estoque: int
    sku: str = ''
    disponivel: bool = True


@dataclass
class Produto:
    """Entidade do Produto do catálogo, com suas variantes."""
    nome: str
    slug: str
    preco_base: Decimal
    categoria_id: Optional[int] = None
    descricao: str = ''
    descricao_curta: str = ''
    preco_comparacao: Optional[Decimal] = None
    ativo: bool = True
    em_destaque: bool = False
    vendidos: int = 0
    limite_estoque_baixo: int = 10
    avaliacao_media: Decimal = ZERO
    avaliacao_quantidade: int = 0
    imagem: Optional[str] = None
    variantes: List[Variante] = field(default_factory=list)
    id: Optional[int] = None

    @property
    def estoque_total(self) -> int:
        """Soma do estoque de todas as variantes (nunca armazenado)."""
        return sum(v.estoque for v in self.variantes)

    @property
    def status_estoque(self) -> str:
        total = self.estoque_total
        if total == 0:
            return 'esgotado'
        if total <= self.limite_estoque_baixo:
            return 'estoque_baixo'
        return 'em_estoque'

    @property
    def percentual_desconto(self) -> int:
        if self.preco_comparacao and self.preco_comparacao > self.preco_base:
            return int(((self.preco_comparacao - self.preco_base) / self.preco_comparacao * 100)
                       .quantize(Decimal('1'), rounding=ROUND_HALF_UP))
        return 0

    def buscar_variante(self, variante_id) -> Optional[Variante]:
        return next((v for v in self.variantes if str(v.id) == str(variante_id)), None)


# ====================================================================
# CARRINHO
# ====================================================================

@dataclass
class ItemCarrinho:
    """Entidade que representa um item no carrinho (preço capturado ao adicionar)."""
    produto_id: int
    variante_id: int
    quantidade: int
    preco_unitario: Decimal
    nome: str = ''
    tamanho: str = ''
    peso: Optional[Decimal] = None
    unidade_peso: str = ''
    imagem: Optional[str] = None
    id: Optional[int] = None

    @property
    def subtotal(self) -> Decimal:
        """Calcula o subtotal do item."""
        return self.preco_unitario * self.quantidade


@dataclass
class CupomAplicado:
    """Cópia dos termos do cupom no momento em que foi aplicado ao carrinho."""
    codigo: str
    valor: Decimal
    tipo: str
    desconto_maximo: Optional[Decimal] = None

    def calcular(self, subtotal: Decimal) -> Decimal:
        if self.tipo == TIPO_PERCENTUAL:
            desconto = subtotal * self.valor / Decimal('100')
            if self.desconto_maximo is not None:
                desconto = min(desconto, self.desconto_maximo)
            return desconto
        return min(self.valor, subtotal)

    def to_dict(self) -> dict:
        return {
            'codigo': self.codigo,
            'valor': str(self.valor),
            'tipo': self.tipo,
            'desconto_maximo': str(self.desconto_maximo) if self.desconto_maximo is not None else None,
        }

    @classmethod
    def from_dict(cls, dados: Optional[dict]) -> Optional['CupomAplicado']:
        if not dados:
            return None
        maximo = dados.get('desconto_maximo')
        return cls(
            codigo=dados['codigo'],
            valor=Decimal(str(dados['valor'])),
            tipo=dados['tipo'],
            desconto_maximo=Decimal(str(maximo)) if maximo is not None else None,
        )


@dataclass
class Carrinho:
    """Entidade do Carrinho de Compras (um por usuário)."""
    usuario_id: int
    itens: List[ItemCarrinho] = field(default_factory=list)
    cupom: Optional[CupomAplicado] = None
    subtotal: Decimal = ZERO
    desconto: Decimal = ZERO
    frete: Decimal = ZERO
    imposto: Decimal = ZERO
    total: Decimal = ZERO
    versao: int = 0
    expira_em: Optional[datetime] = None
    id: Optional[int] = None

    def recalcular_totais(
        self,
        taxa_imposto: Decimal = TAXA_IMPOSTO_PADRAO,
        limite_frete_gratis: Decimal = LIMITE_FRETE_GRATIS_PADRAO,
        custo_frete: Decimal = CUSTO_FRETE_PADRAO,
    ) -> 'Carrinho':
        """
        Recalcula os cinco campos derivados a partir dos itens e do cupom.

        O total é somado com os valores intermediários sem arredondar; cada
        campo é arredondado individualmente só no final.
        """
        subtotal = sum((item.subtotal for item in self.itens), ZERO)
        desconto = self.cupom.calcular(subtotal) if self.cupom else ZERO
        apos_desconto = subtotal - desconto
        frete = ZERO if apos_desconto >= limite_frete_gratis else Decimal(custo_frete)
        imposto = apos_desconto * Decimal(taxa_imposto)
        total = apos_desconto + frete + imposto

        self.subtotal = arredondar(subtotal)
        self.desconto = arredondar(desconto)
        self.frete = arredondar(frete)
        self.imposto = arredondar(imposto)
        self.total = arredondar(total)
        return self

    def buscar_item(self, produto_id, variante_id) -> Optional[ItemCarrinho]:
        return next(
            (i for i in self.itens
             if str(i.produto_id) == str(produto_id) and str(i.variante_id) == str(variante_id)),
            None,
        )

    def remover_item(self, produto_id, variante_id) -> bool:
        item = self.buscar_item(produto_id, variante_id)
        if item is None:
            return False
        self.itens.remove(item)
        return True

    def limpar(self):
        self.itens = []
        self.cupom = None

    @property
    def quantidade_itens(self) -> int:
        return sum(i.quantidade for i in self.itens)

    def esta_expirado(self, momento: Optional[datetime] = None) -> bool:
        if self.expira_em is None:
            return False
        return self.expira_em <= (momento or agora())


# ====================================================================
# CUPOM
# ====================================================================

@dataclass
class UsoCupom:
    """Registro de uso (append-only) de um cupom."""
    usuario_id: int
    data_uso: datetime = field(default_factory=agora)
    pedido_id: Optional[int] = None


@dataclass
class Cupom:
    """Entidade do Cupom de desconto."""
    codigo: str
    tipo_desconto: str
    valor_desconto: Decimal
    data_inicio: datetime
    data_fim: datetime
    descricao: str = ''
    compra_minima: Decimal = ZERO
    desconto_maximo: Optional[Decimal] = None
    limite_uso: Optional[int] = None
    limite_uso_por_usuario: int = 1
    apenas_primeiro_pedido: bool = False
    ativo: bool = True
    produtos_aplicaveis: List[int] = field(default_factory=list)
    categorias_aplicaveis: List[int] = field(default_factory=list)
    usos: List[UsoCupom] = field(default_factory=list)
    id: Optional[int] = None

    def __post_init__(self):
        self.codigo = (self.codigo or '').strip().upper()

    @property
    def quantidade_usos(self) -> int:
        return len(self.usos)

    def usos_do_usuario(self, usuario_id) -> int:
        return sum(1 for u in self.usos if str(u.usuario_id) == str(usuario_id))

    def esta_valido(self, momento: Optional[datetime] = None) -> bool:
        momento = momento or agora()
        if not self.ativo:
            return False
        if not (self.data_inicio <= momento <= self.data_fim):
            return False
        if self.limite_uso is not None and self.quantidade_usos >= self.limite_uso:
            return False
        return True

    def pode_ser_usado_por(
        self,
        usuario_id,
        pedidos_concluidos: int = 0,
        momento: Optional[datetime] = None,
    ) -> Tuple[bool, str]:
        """Retorna (pode_usar, motivo). A primeira regra que falhar define o motivo."""
        if not self.esta_valido(momento):
            return False, "Cupom inválido ou expirado."
        if self.usos_do_usuario(usuario_id) >= self.limite_uso_por_usuario:
            return False, "Você já utilizou este cupom o número máximo de vezes."
        if self.apenas_primeiro_pedido and pedidos_concluidos > 0:
            return False, "Este cupom é válido apenas para o primeiro pedido."
        return True, ''

    def calcular_desconto(self, subtotal: Decimal) -> Tuple[Decimal, Optional[str]]:
        """Retorna (desconto, mensagem). Abaixo da compra mínima o desconto é zero."""
        if subtotal < self.compra_minima:
            return ZERO, f"Compra mínima de {arredondar(self.compra_minima)} necessária."
        return arredondar(self.para_carrinho().calcular(subtotal)), None

    def aplica_se_a(self, itens: Iterable[Tuple[int, Optional[int]]]) -> bool:
        """
        Recebe pares (produto_id, categoria_id) dos itens do carrinho e diz se
        ao menos um está no escopo do cupom. Cupom sem escopo vale para tudo.
        """
        if not self.produtos_aplicaveis and not self.categorias_aplicaveis:
            return True
        produtos = {str(p) for p in self.produtos_aplicaveis}
        categorias = {str(c) for c in self.categorias_aplicaveis}
        return any(
            str(produto_id) in produtos or (categoria_id is not None and str(categoria_id) in categorias)
            for produto_id, categoria_id in itens
        )

    def para_carrinho(self) -> CupomAplicado:
        return CupomAplicado(
            codigo=self.codigo,
            valor=self.valor_desconto,
            tipo=self.tipo_desconto,
            desconto_maximo=self.desconto_maximo if self.tipo_desconto == TIPO_PERCENTUAL else None,
        )


# ====================================================================
# PEDIDO
# ====================================================================

@dataclass
class ItemPedido:
    """Snapshot de um item no momento da compra (imutável)."""
    produto_id: Optional[int]
    variante_id: int
    nome: str
    preco: Decimal
    quantidade: int
    tamanho: str = ''
    peso: Optional[Decimal] = None
    unidade_peso: str = ''
    imagem: Optional[str] = None
    total: Decimal = field(init=False)

    def __post_init__(self):
        self.total = arredondar(self.preco * self.quantidade)


@dataclass
class EnderecoEntrega:
    """Cópia do endereço de entrega gravada no pedido."""
    nome: str
    sobrenome: str = ''
    rua: str = ''
    complemento: str = ''
    cidade: str = ''
    estado: str = ''
    cep: str = ''
    pais: str = 'India'
    telefone: str = ''
    email: str = ''

    @classmethod
    def from_dict(cls, dados: Optional[dict]) -> Optional['EnderecoEntrega']:
        if not dados:
            return None
        campos = cls.__dataclass_fields__.keys()
        return cls(**{k: v for k, v in dados.items() if k in campos and v is not None})


@dataclass
class PagamentoPedido:
    """Sub-registro de pagamento do pedido."""
    metodo: str = 'razorpay'
    status: str = 'pendente'
    gateway_pedido_id: Optional[str] = None
    gateway_pagamento_id: Optional[str] = None
    gateway_assinatura: Optional[str] = None
    reembolso_id: Optional[str] = None
    pago_em: Optional[datetime] = None
    valor_reembolsado: Decimal = ZERO


@dataclass
class Rastreamento:
    transportadora: str = ''
    codigo_rastreio: str = ''
    url_rastreio: str = ''
    previsao_entrega: Optional[datetime] = None


@dataclass
class HistoricoStatus:
    """Entrada do histórico de status (append-only)."""
    status: str
    observacao: str = ''
    atualizado_por: Optional[int] = None
    data: datetime = field(default_factory=agora)


def gerar_numero_pedido(prefixo: str = 'DF', momento: Optional[datetime] = None) -> str:
    """Gera o número legível do pedido no formato PREFIXOyymm-XXXXXX."""
    momento = momento or agora()
    alfabeto = string.ascii_uppercase + string.digits
    sufixo = ''.join(secrets.choice(alfabeto) for _ in range(6))
    return f"{prefixo}{momento:%y%m}-{sufixo}"


@dataclass
class Pedido:
    """Entidade do Pedido de Venda."""
    # Campos obrigatórios
    usuario_id: int
    numero_pedido: str
    itens: List[ItemPedido]
    subtotal: Decimal
    desconto: Decimal
    frete: Decimal
    imposto: Decimal
    total: Decimal
    # Campos opcionais/calculados
    status: str = 'pendente'
    endereco_entrega: Optional[EnderecoEntrega] = None
    tipo_entrega: str = ENTREGA_DOMICILIO
    metodo_envio: str = 'padrao'
    cupom: Optional[CupomAplicado] = None
    pagamento: PagamentoPedido = field(default_factory=PagamentoPedido)
    rastreamento: Rastreamento = field(default_factory=Rastreamento)
    historico: List[HistoricoStatus] = field(default_factory=list)
    entregue_em: Optional[datetime] = None
    cancelado_em: Optional[datetime] = None
    motivo_cancelamento: str = ''
    motivo_devolucao: str = ''
    devolucao_solicitada_em: Optional[datetime] = None
    observacoes_internas: str = ''
    data_criacao: datetime = field(default_factory=agora)
    id: Optional[int] = None

    @classmethod
    def a_partir_do_carrinho(
        cls,
        carrinho: Carrinho,
        pagamento: PagamentoPedido,
        endereco: Optional[EnderecoEntrega],
        tipo_entrega: str,
        prefixo: str = 'DF',
    ) -> 'Pedido':
        """Congela itens, cupom e totais do carrinho num pedido confirmado."""
        itens = [
            ItemPedido(
                produto_id=i.produto_id,
                variante_id=i.variante_id,
                nome=i.nome,
                preco=i.preco_unitario,
                quantidade=i.quantidade,
                tamanho=i.tamanho,
                peso=i.peso,
                unidade_peso=i.unidade_peso,
                imagem=i.imagem,
            )
            for i in carrinho.itens
        ]
        pedido = cls(
            usuario_id=carrinho.usuario_id,
            numero_pedido=gerar_numero_pedido(prefixo),
            itens=itens,
            subtotal=carrinho.subtotal,
            desconto=carrinho.desconto,
            frete=carrinho.frete,
            imposto=carrinho.imposto,
            total=carrinho.total,
            endereco_entrega=endereco,
            tipo_entrega=tipo_entrega,
            metodo_envio='retirada' if tipo_entrega == RETIRADA_LOJA else 'padrao',
            cupom=carrinho.cupom,
            pagamento=pagamento,
        )
        pedido.registrar_status('confirmado', "Pagamento concluído com sucesso via Razorpay")
        return pedido

    @property
    def pode_ser_cancelado(self) -> bool:
        return self.status not in STATUS_SEM_CANCELAMENTO

    @property
    def pode_ser_reembolsado(self) -> bool:
        return (
            self.pagamento.status in ('concluido', 'parcialmente_reembolsado')
            and bool(self.pagamento.gateway_pagamento_id)
        )

    @property
    def valor_reembolsavel(self) -> Decimal:
        return arredondar(self.total - self.pagamento.valor_reembolsado)

    def pode_solicitar_devolucao(self, janela_dias: int = 7, momento: Optional[datetime] = None) -> bool:
        if self.status != 'entregue' or self.entregue_em is None:
            return False
        return (momento or agora()) - self.entregue_em <= timedelta(days=janela_dias)

    def registrar_status(
        self,
        status: str,
        observacao: str = '',
        atualizado_por: Optional[int] = None,
        momento: Optional[datetime] = None,
    ) -> HistoricoStatus:
        """Altera o status e acrescenta a entrada correspondente no histórico."""
        momento = momento or agora()
        self.status = status
        if status == 'entregue':
            self.entregue_em = momento
        elif status == 'cancelado':
            self.cancelado_em = momento
        entrada = HistoricoStatus(status=status, observacao=observacao,
                                  atualizado_por=atualizado_por, data=momento)
        self.historico.append(entrada)
        return entrada


# ====================================================================
# CONCILIAÇÃO DE PAGAMENTOS
# ====================================================================

@dataclass
class RegistroConciliacao:
    """
    Registro gravado assim que um pagamento é verificado, antes da conversão.

    Permite encontrar pagamentos capturados cujo pedido não foi criado.
    """
    gateway_pagamento_id: str
    gateway_pedido_id: str
    carrinho_id: Optional[int]
    usuario_id: int
    assinatura: str = ''
    tipo_entrega: str = ENTREGA_DOMICILIO
    endereco_entrega: Optional[Dict] = None
    status: str = 'capturado'
    motivo: str = ''
    tentativas: int = 0
    pedido_id: Optional[int] = None
    id: Optional[int] = None


# ====================================================================
# AVALIAÇÕES E LISTA DE DESEJOS
# ====================================================================

@dataclass
class Avaliacao:
    produto_id: int
    usuario_id: int
    nota: int
    titulo: str = ''
    comentario: str = ''
    compra_verificada: bool = False
    aprovada: bool = True
    data_criacao: datetime = field(default_factory=agora)
    id: Optional[int] = None


@dataclass
class ItemListaDesejos:
    produto_id: int
    variante_id: Optional[int] = None
    adicionado_em: datetime = field(default_factory=agora)
    produto: Optional[Produto] = None


@dataclass
class ListaDesejos:
    """Lista de desejos do usuário (uma por usuário)."""
    usuario_id: int
    itens: List[ItemListaDesejos] = field(default_factory=list)
    id: Optional[int] = None

    def contem(self, produto_id) -> bool:
        return any(str(i.produto_id) == str(produto_id) for i in self.itens)
