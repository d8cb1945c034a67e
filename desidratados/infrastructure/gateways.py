import hashlib
import hmac
import logging
import uuid
from typing import Dict, Optional

import requests
from decouple import config
from django.conf import settings
from django.core.mail import send_mail

from desidratados.core.ports import IGatewayPagamento, INotificacaoService
from desidratados.core.entities import Pedido, Usuario
from desidratados.core.exceptions import PagamentoFalhouError, GatewayIndisponivelError

logger = logging.getLogger(__name__)


def _assinar(segredo: str, mensagem: bytes) -> str:
    return hmac.new(segredo.encode(), mensagem, hashlib.sha256).hexdigest()


# ====================================================================
# GATEWAYS: Implementações concretas que se comunicam com APIs externas.
# ====================================================================

class RazorpayGateway(IGatewayPagamento):
    """
    Gateway para comunicação com a API de Pagamentos da Razorpay.
    Implementa a interface IGatewayPagamento do Core. Todos os valores
    trafegam na menor unidade da moeda (paise).
    """

    TIMEOUT = 15

    def __init__(self, key_id: Optional[str] = None, key_secret: Optional[str] = None,
                 webhook_secret: Optional[str] = None):
        self.api_base_url = "https://api.razorpay.com/v1"
        self.key_id = key_id or config("RAZORPAY_KEY_ID", default="")
        self.key_secret = key_secret or config("RAZORPAY_KEY_SECRET", default="")
        self.webhook_secret = webhook_secret or config("RAZORPAY_WEBHOOK_SECRET", default="")

        if not self.key_id or not self.key_secret:
            logger.warning("RAZORPAY_KEY_ID/RAZORPAY_KEY_SECRET não configurados. Pagamentos reais falharão.")

    # --- MÉTODOS PRIVADOS ---

    def _requisitar(self, metodo: str, caminho: str, payload: Optional[Dict] = None) -> Dict:
        url = f"{self.api_base_url}{caminho}"
        try:
            response = requests.request(
                metodo, url, json=payload, auth=(self.key_id, self.key_secret), timeout=self.TIMEOUT,
            )
        except requests.exceptions.RequestException as e:
            logger.error("Falha de conexão com a Razorpay (%s %s): %s", metodo, caminho, e)
            raise GatewayIndisponivelError()

        if response.status_code >= 500:
            logger.error("Razorpay respondeu %s para %s %s", response.status_code, metodo, caminho)
            raise GatewayIndisponivelError()
        if response.status_code >= 400:
            try:
                descricao = response.json().get('error', {}).get('description', '')
            except ValueError:
                descricao = response.text
            logger.warning("Razorpay recusou %s %s: %s", metodo, caminho, descricao)
            raise PagamentoFalhouError(f"O gateway recusou a operação: {descricao}")
        return response.json()

    # --- MÉTODOS PÚBLICOS QUE IMPLEMENTAM O PROTOCOLO CORE ---

    def criar_pedido(self, valor_minimo: int, moeda: str, recibo: str, notas: Dict[str, str]) -> Dict:
        return self._requisitar('POST', '/orders', {
            'amount': valor_minimo,
            'currency': moeda,
            'receipt': recibo[:40],
            'notes': notas,
        })

    def verificar_assinatura(self, gateway_pedido_id: str, gateway_pagamento_id: str, assinatura: str) -> bool:
        """HMAC-SHA256 de "pedido|pagamento" com a chave secreta, comparado em tempo constante."""
        if not assinatura or not self.key_secret:
            return False
        esperada = _assinar(self.key_secret, f"{gateway_pedido_id}|{gateway_pagamento_id}".encode())
        return hmac.compare_digest(esperada, assinatura)

    def buscar_pagamento(self, gateway_pagamento_id: str) -> Dict:
        return self._requisitar('GET', f'/payments/{gateway_pagamento_id}')

    def criar_reembolso(self, gateway_pagamento_id: str, valor_minimo: int, notas: Dict[str, str]) -> Dict:
        return self._requisitar('POST', f'/payments/{gateway_pagamento_id}/refund', {
            'amount': valor_minimo,
            'notes': notas,
        })

    def verificar_assinatura_webhook(self, corpo: bytes, assinatura: str) -> bool:
        if not assinatura or not self.webhook_secret:
            return False
        return hmac.compare_digest(_assinar(self.webhook_secret, corpo), assinatura)


class PagamentoGatewayMock(IGatewayPagamento):
    """
    Gateway Mock para desenvolvimento e testes.
    Guarda pedidos e pagamentos em memória e assina com um segredo local.
    """

    def __init__(self, key_secret: str = 'segredo_mock', webhook_secret: str = 'webhook_mock'):
        self.key_secret = key_secret
        self.webhook_secret = webhook_secret
        self.pedidos: Dict[str, Dict] = {}
        self.pagamentos: Dict[str, Dict] = {}
        self.reembolsos: Dict[str, Dict] = {}

    # --- Auxiliares para simular o lado do cliente ---

    def registrar_pagamento(self, gateway_pedido_id: str, status: str = 'captured',
                            valor_minimo: Optional[int] = None, notas: Optional[Dict] = None) -> str:
        """Simula o pagamento de um pedido e devolve o id do pagamento."""
        pagamento_id = f"pay_mock_{uuid.uuid4().hex[:14]}"
        pedido = self.pedidos.get(gateway_pedido_id, {})
        self.pagamentos[pagamento_id] = {
            'id': pagamento_id,
            'status': status,
            'order_id': gateway_pedido_id,
            'amount': valor_minimo if valor_minimo is not None else pedido.get('amount', 0),
            'notes': notas if notas is not None else pedido.get('notes', {}),
        }
        return pagamento_id

    def assinar(self, gateway_pedido_id: str, gateway_pagamento_id: str) -> str:
        return _assinar(self.key_secret, f"{gateway_pedido_id}|{gateway_pagamento_id}".encode())

    def assinar_webhook(self, corpo: bytes) -> str:
        return _assinar(self.webhook_secret, corpo)

    # --- Protocolo ---

    def criar_pedido(self, valor_minimo: int, moeda: str, recibo: str, notas: Dict[str, str]) -> Dict:
        pedido_id = f"order_mock_{uuid.uuid4().hex[:14]}"
        self.pedidos[pedido_id] = {
            'id': pedido_id, 'amount': valor_minimo, 'currency': moeda, 'receipt': recibo, 'notes': notas,
        }
        logger.debug("[MOCK Pagamento] Pedido %s criado (%s %s)", pedido_id, valor_minimo, moeda)
        return self.pedidos[pedido_id]

    def verificar_assinatura(self, gateway_pedido_id: str, gateway_pagamento_id: str, assinatura: str) -> bool:
        if not assinatura:
            return False
        return hmac.compare_digest(self.assinar(gateway_pedido_id, gateway_pagamento_id), assinatura)

    def buscar_pagamento(self, gateway_pagamento_id: str) -> Dict:
        pagamento = self.pagamentos.get(gateway_pagamento_id)
        if pagamento is None:
            raise PagamentoFalhouError(f"Pagamento {gateway_pagamento_id} não encontrado no gateway.")
        return pagamento

    def criar_reembolso(self, gateway_pagamento_id: str, valor_minimo: int, notas: Dict[str, str]) -> Dict:
        pagamento = self.buscar_pagamento(gateway_pagamento_id)
        reembolso_id = f"rfnd_mock_{uuid.uuid4().hex[:14]}"
        self.reembolsos[reembolso_id] = {
            'id': reembolso_id, 'payment_id': pagamento['id'], 'amount': valor_minimo, 'notes': notas,
        }
        return self.reembolsos[reembolso_id]

    def verificar_assinatura_webhook(self, corpo: bytes, assinatura: str) -> bool:
        if not assinatura:
            return False
        return hmac.compare_digest(self.assinar_webhook(corpo), assinatura)


class EmailServiceGateway(INotificacaoService):
    """
    Gateway para envio de e-mails usando o sistema de e-mail do Django.
    Implementa o Protocolo INotificacaoService.
    """

    def _enviar(self, assunto: str, mensagem: str, destinatario: str, referencia: str) -> bool:
        remetente = getattr(settings, 'DEFAULT_FROM_EMAIL', 'noreply@desidratados.com')
        try:
            send_mail(assunto, mensagem, remetente, [destinatario], fail_silently=False)
            return True
        except Exception:
            logger.exception("Falha ao enviar e-mail (%s) para %s", referencia, destinatario)
            return False

    def enviar_confirmacao_pedido(self, pedido: Pedido, usuario: Usuario) -> bool:
        """Implementa INotificacaoService - Confirmação do pedido."""
        linhas = "\n".join(
            f"- {item.nome} ({item.tamanho}) x{item.quantidade}: {item.total}" for item in pedido.itens
        )
        mensagem = (
            f"Olá {usuario.nome or usuario.email},\n\n"
            f"Recebemos o seu pedido {pedido.numero_pedido}.\n\n"
            f"{linhas}\n\n"
            f"Subtotal: {pedido.subtotal}\n"
            f"Desconto: {pedido.desconto}\n"
            f"Frete: {pedido.frete}\n"
            f"Impostos: {pedido.imposto}\n"
            f"Total: {pedido.total}\n\n"
            f"Obrigado por comprar conosco!"
        )
        return self._enviar(f"Pedido {pedido.numero_pedido} confirmado", mensagem, usuario.email,
                            f"confirmação {pedido.numero_pedido}")

    def enviar_notificacao_envio(self, pedido: Pedido, usuario: Usuario) -> bool:
        """Implementa INotificacaoService - Pedido enviado."""
        r = pedido.rastreamento
        rastreio = ""
        if r.codigo_rastreio:
            rastreio = f"Transportadora: {r.transportadora}\nCódigo de rastreio: {r.codigo_rastreio}\n"
            if r.url_rastreio:
                rastreio += f"Acompanhe em: {r.url_rastreio}\n"
        mensagem = (
            f"Olá {usuario.nome or usuario.email},\n\n"
            f"Seu pedido {pedido.numero_pedido} foi enviado.\n"
            f"{rastreio}\n"
            f"Equipe Desidratados."
        )
        return self._enviar(f"Pedido {pedido.numero_pedido} enviado", mensagem, usuario.email,
                            f"envio {pedido.numero_pedido}")
