# desidratados/core/ports.py
"""
Definição das Portas (Interfaces/Protocolos) da Arquitetura Limpa.

Estes protocolos definem o contrato que a camada de Infraestrutura (Repositorios, Gateways)
DEVE seguir para se conectar à camada Core (Casos de Uso).
"""

from typing import Protocol, Callable, List, Optional, Dict
from abc import abstractmethod
from datetime import datetime
from decimal import Decimal

from desidratados.core.entities import (
    Produto, Categoria, Carrinho, Cupom, Pedido, Usuario, EnderecoEntrega,
    PagamentoPedido, RegistroConciliacao, Avaliacao, ListaDesejos
)


# ====================================================================
# 1. REPOSITÓRIOS (Portas de Persistência)
# ====================================================================

class IProdutoRepository(Protocol):
    """Protocolo para a persistência e busca de Produtos e Variantes."""

    @abstractmethod
    def buscar_por_id(self, produto_id) -> Optional[Produto]: ...

    @abstractmethod
    def buscar_por_slug(self, slug: str) -> Optional[Produto]: ...

    @abstractmethod
    def listar(
        self,
        busca: Optional[str] = None,
        categoria_slug: Optional[str] = None,
        apenas_ativos: bool = True,
    ) -> List[Produto]: ...

    @abstractmethod
    def listar_categorias(self) -> List[Categoria]: ...

    @abstractmethod
    def decrementar_estoque_variante(self, produto_id, variante_id, quantidade: int) -> bool:
        """Decremento condicional (estoque >= quantidade). Retorna False se a condição falhar."""
        ...

    @abstractmethod
    def incrementar_estoque_variante(self, produto_id, variante_id, quantidade: int): ...

    @abstractmethod
    def atualizar_avaliacao(self, produto_id, media: Decimal, quantidade: int): ...


class ICarrinhoRepository(Protocol):
    """Protocolo para a persistência de Carrinhos (um por usuário)."""

    @abstractmethod
    def buscar_por_usuario(self, usuario_id) -> Optional[Carrinho]:
        """Retorna None quando não existe carrinho ou ele já expirou."""
        ...

    @abstractmethod
    def buscar_ou_criar(self, usuario_id) -> Carrinho: ...

    @abstractmethod
    def buscar_por_id(self, carrinho_id) -> Optional[Carrinho]: ...

    @abstractmethod
    def salvar(self, carrinho: Carrinho) -> Carrinho:
        """Persiste itens/cupom/totais com checagem otimista de versão."""
        ...

    @abstractmethod
    def deletar(self, carrinho_id): ...

    @abstractmethod
    def remover_expirados(self, momento: datetime) -> int: ...


class ICupomRepository(Protocol):
    """Protocolo para a persistência de Cupons."""

    @abstractmethod
    def buscar_por_codigo(self, codigo: str) -> Optional[Cupom]: ...

    @abstractmethod
    def buscar_por_id(self, cupom_id) -> Optional[Cupom]: ...

    @abstractmethod
    def listar(self, ativo: Optional[bool] = None, busca: Optional[str] = None) -> List[Cupom]: ...

    @abstractmethod
    def existe_codigo(self, codigo: str) -> bool: ...

    @abstractmethod
    def salvar(self, cupom: Cupom) -> Cupom: ...

    @abstractmethod
    def deletar(self, cupom_id): ...


class IPedidoRepository(Protocol):
    """Protocolo para a persistência e gestão de Pedidos."""

    @abstractmethod
    def converter_carrinho(
        self,
        carrinho_id,
        pagamento: PagamentoPedido,
        endereco: Optional[EnderecoEntrega],
        tipo_entrega: str,
        total_esperado: Decimal,
        prefixo: str,
    ) -> Pedido:
        """
        Cria o pedido a partir do carrinho, baixa o estoque das variantes,
        registra o uso do cupom e apaga o carrinho em uma única transação atômica.
        """
        ...

    @abstractmethod
    def buscar_por_id(self, pedido_id) -> Optional[Pedido]: ...

    @abstractmethod
    def buscar_por_numero(self, numero_pedido: str) -> Optional[Pedido]: ...

    @abstractmethod
    def buscar_por_pagamento_id(self, gateway_pagamento_id: str) -> Optional[Pedido]: ...

    @abstractmethod
    def listar_por_usuario(self, usuario_id, status: Optional[str] = None) -> List[Pedido]: ...

    @abstractmethod
    def listar_todos(
        self,
        status: Optional[str] = None,
        status_pagamento: Optional[str] = None,
        busca: Optional[str] = None,
        data_inicio: Optional[datetime] = None,
        data_fim: Optional[datetime] = None,
    ) -> List[Pedido]: ...

    @abstractmethod
    def contar_pedidos_pagos(self, usuario_id) -> int: ...

    @abstractmethod
    def usuario_comprou_produto(self, usuario_id, produto_id) -> bool: ...

    @abstractmethod
    def salvar(self, pedido: Pedido) -> Pedido:
        """Persiste campos mutáveis (status, rastreamento, reembolso, notas) e novas entradas de histórico."""
        ...

    @abstractmethod
    def atualizar_com_trava(self, pedido_id, alteracao: Callable[[Pedido], None]) -> Pedido:
        """Trava a linha do pedido, relê o estado atual, aplica `alteracao` e persiste."""
        ...

    @abstractmethod
    def cancelar(self, pedido_id, alteracao: Callable[[Pedido], None]) -> Pedido:
        """Como `atualizar_com_trava`, devolvendo o estoque dos itens na mesma transação."""
        ...


class IConciliacaoRepository(Protocol):
    """Diário de pagamentos verificados, usado para recuperar conversões interrompidas."""

    @abstractmethod
    def registrar_captura(self, registro: RegistroConciliacao) -> RegistroConciliacao: ...

    @abstractmethod
    def buscar_por_pagamento_id(self, gateway_pagamento_id: str) -> Optional[RegistroConciliacao]: ...

    @abstractmethod
    def marcar_convertido(self, gateway_pagamento_id: str, pedido_id): ...

    @abstractmethod
    def marcar_falha(self, gateway_pagamento_id: str, motivo: str): ...

    @abstractmethod
    def listar_pendentes(self, criado_antes_de: Optional[datetime] = None) -> List[RegistroConciliacao]: ...

    @abstractmethod
    def listar_falhas(self) -> List[RegistroConciliacao]: ...


class IUsuarioRepository(Protocol):
    """Protocolo para a leitura de Usuários."""

    @abstractmethod
    def buscar_por_id(self, usuario_id) -> Optional[Usuario]: ...


class IAvaliacaoRepository(Protocol):

    @abstractmethod
    def buscar_por_id(self, avaliacao_id) -> Optional[Avaliacao]: ...

    @abstractmethod
    def buscar_do_usuario(self, produto_id, usuario_id) -> Optional[Avaliacao]: ...

    @abstractmethod
    def listar_por_produto(self, produto_id, apenas_aprovadas: bool = True) -> List[Avaliacao]: ...

    @abstractmethod
    def listar_pendentes(self) -> List[Avaliacao]: ...

    @abstractmethod
    def notas_aprovadas(self, produto_id) -> List[int]: ...

    @abstractmethod
    def salvar(self, avaliacao: Avaliacao) -> Avaliacao: ...

    @abstractmethod
    def deletar(self, avaliacao_id): ...


class IListaDesejosRepository(Protocol):

    @abstractmethod
    def buscar_ou_criar(self, usuario_id) -> ListaDesejos: ...

    @abstractmethod
    def adicionar(self, usuario_id, produto_id, variante_id=None) -> ListaDesejos: ...

    @abstractmethod
    def remover(self, usuario_id, produto_id) -> ListaDesejos: ...

    @abstractmethod
    def limpar(self, usuario_id) -> ListaDesejos: ...


# ====================================================================
# 2. GATEWAYS (Portas de Serviços Externos)
# ====================================================================

class IGatewayPagamento(Protocol):
    """Protocolo para o gateway de pagamento (valores sempre na menor unidade da moeda)."""

    @abstractmethod
    def criar_pedido(self, valor_minimo: int, moeda: str, recibo: str, notas: Dict[str, str]) -> Dict:
        """Retorna ao menos {'id', 'amount', 'currency'}."""
        ...

    @abstractmethod
    def verificar_assinatura(self, gateway_pedido_id: str, gateway_pagamento_id: str, assinatura: str) -> bool: ...

    @abstractmethod
    def buscar_pagamento(self, gateway_pagamento_id: str) -> Dict:
        """Retorna ao menos {'id', 'status', 'order_id', 'amount'}."""
        ...

    @abstractmethod
    def criar_reembolso(self, gateway_pagamento_id: str, valor_minimo: int, notas: Dict[str, str]) -> Dict: ...

    @abstractmethod
    def verificar_assinatura_webhook(self, corpo: bytes, assinatura: str) -> bool: ...


class INotificacaoService(Protocol):
    """Protocolo para o envio de notificações ao cliente (e-mail)."""

    @abstractmethod
    def enviar_confirmacao_pedido(self, pedido: Pedido, usuario: Usuario) -> bool: ...

    @abstractmethod
    def enviar_notificacao_envio(self, pedido: Pedido, usuario: Usuario) -> bool: ...
