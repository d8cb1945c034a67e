class BaseErroCore(Exception):
    """Classe base para todas as exceções da Camada Core."""
    codigo = 'erro_core'
    status_http = 400

    def __init__(self, message="Ocorreu um erro ao processar a solicitação."):
        self.message = message
        super().__init__(self.message)

    @property
    def detalhes(self) -> dict:
        """Dados extras enviados junto da mensagem na resposta HTTP."""
        return {}


class DadosInvalidosError(BaseErroCore):
    """Erro levantado quando dados inválidos são fornecidos."""
    codigo = 'dados_invalidos'

    def __init__(self, message="Os dados fornecidos são inválidos."):
        super().__init__(message)


class PermissaoNegadaError(BaseErroCore):
    """Erro levantado quando o usuário tenta operar sobre um recurso que não é seu."""
    codigo = 'permissao_negada'
    status_http = 403

    def __init__(self, message="Você não tem permissão para executar esta operação."):
        super().__init__(message)

# ===============================================
# ERROS DE PERSISTÊNCIA E ENTIDADE
# ===============================================

class ItemNaoEncontradoError(BaseErroCore):
    """Erro levantado quando um item (genérico) não é encontrado."""
    codigo = 'nao_encontrado'
    status_http = 404

    def __init__(self, message="O item solicitado não foi encontrado."):
        super().__init__(message)

class ProdutoNaoEncontradoError(ItemNaoEncontradoError):
    """Erro levantado quando um produto específico não é encontrado."""
    def __init__(self, message="O produto solicitado não foi encontrado."):
        super().__init__(message)

class PedidoNaoEncontradoError(ItemNaoEncontradoError):
    """Erro específico para Pedidos não encontrados."""
    def __init__(self, message="O pedido solicitado não foi encontrado."):
        super().__init__(message)

class CupomNaoEncontradoError(ItemNaoEncontradoError):
    """Erro específico para Cupons não encontrados."""
    def __init__(self, message="Cupom inválido."):
        super().__init__(message)

class ItemIndisponivelError(BaseErroCore):
    """Produto inativo ou variante indisponível para venda."""
    codigo = 'item_indisponivel'

    def __init__(self, message="O item solicitado não está disponível."):
        super().__init__(message)

class EstoqueInsuficienteError(BaseErroCore):
    """Erro levantado quando a quantidade solicitada excede o estoque."""
    codigo = 'estoque_insuficiente'

    def __init__(self, disponivel: int, nome_item: str = '', message=None):
        self.disponivel = disponivel
        self.nome_item = nome_item
        if message is None:
            prefixo = f"{nome_item}: " if nome_item else ""
            message = f"{prefixo}apenas {disponivel} unidade(s) disponível(is)."
        super().__init__(message)

    @property
    def detalhes(self) -> dict:
        return {'disponivel': self.disponivel}

class ConflitoConcorrenciaError(BaseErroCore):
    """O carrinho foi alterado por outra requisição; o cliente deve recarregar e repetir."""
    codigo = 'conflito_concorrencia'
    status_http = 409

    def __init__(self, message="O carrinho foi alterado por outra requisição. Tente novamente."):
        super().__init__(message)

# ===============================================
# ERROS DE FLUXO DE COMPRA E PAGAMENTO
# ===============================================

class CarrinhoVazioError(BaseErroCore):
    """Erro levantado ao tentar fazer checkout com carrinho vazio."""
    codigo = 'carrinho_vazio'

    def __init__(self, message="O carrinho de compras está vazio."):
        super().__init__(message)

class CarrinhoInexistenteError(BaseErroCore):
    """O carrinho já foi convertido, expirou ou foi removido."""
    codigo = 'carrinho_inexistente'
    status_http = 404

    def __init__(self, message="Carrinho não encontrado ou expirado."):
        super().__init__(message)

class CupomInelegivelError(BaseErroCore):
    """O cupom existe, mas não pode ser usado nesta compra."""
    codigo = 'cupom_inelegivel'

    def __init__(self, message="O cupom não é válido para esta compra."):
        super().__init__(message)

class AssinaturaInvalidaError(BaseErroCore):
    """Assinatura HMAC do callback de pagamento não confere."""
    codigo = 'assinatura_invalida'

    def __init__(self, message="Assinatura de pagamento inválida."):
        super().__init__(message)

class PagamentoNaoCapturadoError(BaseErroCore):
    """O gateway informa que o pagamento ainda não foi capturado."""
    codigo = 'pagamento_nao_capturado'

    def __init__(self, message="O pagamento não foi capturado pelo gateway."):
        super().__init__(message)

class PagamentoDivergenteError(BaseErroCore):
    """Valor ou pedido do pagamento não corresponde ao carrinho."""
    codigo = 'pagamento_divergente'

    def __init__(self, message="Os dados do pagamento não correspondem ao carrinho."):
        super().__init__(message)

class PagamentoFalhouError(BaseErroCore):
    """Erro levantado quando o Gateway de Pagamento rejeita a transação."""
    codigo = 'pagamento_falhou'

    def __init__(self, message="A transação de pagamento foi rejeitada ou falhou."):
        super().__init__(message)

class GatewayIndisponivelError(BaseErroCore):
    """Falha de comunicação com o gateway (timeout, erro de rede ou 5xx)."""
    codigo = 'gateway_indisponivel'
    status_http = 503

    def __init__(self, message="O gateway de pagamento está indisponível no momento."):
        super().__init__(message)

class EstadoPedidoInvalidoError(BaseErroCore):
    """Transição de status não permitida para o pedido."""
    codigo = 'estado_pedido_invalido'

    def __init__(self, message="Esta operação não é permitida no status atual do pedido."):
        super().__init__(message)
