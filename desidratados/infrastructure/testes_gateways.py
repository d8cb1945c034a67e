import hashlib
import hmac
import unittest
from decimal import Decimal
from unittest.mock import Mock, patch

import requests
from django.core import mail
from django.test import SimpleTestCase

from desidratados.core.entities import Pedido, ItemPedido, Usuario
from desidratados.core.exceptions import PagamentoFalhouError, GatewayIndisponivelError
from desidratados.infrastructure.gateways import RazorpayGateway, PagamentoGatewayMock, EmailServiceGateway


def resposta(status_code, dados=None):
    response = Mock(status_code=status_code, text='')
    response.json.return_value = dados or {}
    return response


class TestRazorpayGateway(unittest.TestCase):

    def setUp(self):
        self.gateway = RazorpayGateway(key_id='rzp_test_1', key_secret='segredo', webhook_secret='segredo_webhook')

    def test_assinatura_valida(self):
        assinatura = hmac.new(b'segredo', b'order_1|pay_1', hashlib.sha256).hexdigest()
        self.assertTrue(self.gateway.verificar_assinatura('order_1', 'pay_1', assinatura))

    def test_assinatura_adulterada(self):
        assinatura = hmac.new(b'segredo', b'order_1|pay_2', hashlib.sha256).hexdigest()
        self.assertFalse(self.gateway.verificar_assinatura('order_1', 'pay_1', assinatura))
        self.assertFalse(self.gateway.verificar_assinatura('order_1', 'pay_1', ''))

    def test_assinatura_do_webhook_usa_o_corpo_bruto(self):
        corpo = b'{"event": "payment.captured"}'
        assinatura = hmac.new(b'segredo_webhook', corpo, hashlib.sha256).hexdigest()

        self.assertTrue(self.gateway.verificar_assinatura_webhook(corpo, assinatura))
        self.assertFalse(self.gateway.verificar_assinatura_webhook(corpo + b' ', assinatura))

    @patch('desidratados.infrastructure.gateways.requests.request')
    def test_criar_pedido(self, request_mock):
        """
        Cenário: O pedido é criado com o valor em paise e autenticação básica.
        """
        # ARRANGE
        request_mock.return_value = resposta(200, {'id': 'order_1', 'amount': 70564, 'currency': 'INR'})

        # ACT
        pedido = self.gateway.criar_pedido(70564, 'INR', 'recibo_1', {'carrinho_id': '5'})

        # ASSERT
        self.assertEqual(pedido['id'], 'order_1')
        args, kwargs = request_mock.call_args
        self.assertEqual(args, ('POST', 'https://api.razorpay.com/v1/orders'))
        self.assertEqual(kwargs['json']['amount'], 70564)
        self.assertEqual(kwargs['auth'], ('rzp_test_1', 'segredo'))
        self.assertEqual(kwargs['timeout'], RazorpayGateway.TIMEOUT)

    @patch('desidratados.infrastructure.gateways.requests.request')
    def test_erro_5xx_vira_gateway_indisponivel(self, request_mock):
        request_mock.return_value = resposta(502)
        with self.assertRaises(GatewayIndisponivelError):
            self.gateway.buscar_pagamento('pay_1')

    @patch('desidratados.infrastructure.gateways.requests.request')
    def test_timeout_vira_gateway_indisponivel(self, request_mock):
        request_mock.side_effect = requests.exceptions.Timeout()
        with self.assertRaises(GatewayIndisponivelError):
            self.gateway.criar_reembolso('pay_1', 1000, {})

    @patch('desidratados.infrastructure.gateways.requests.request')
    def test_erro_4xx_vira_pagamento_falhou(self, request_mock):
        request_mock.return_value = resposta(400, {'error': {'description': 'The amount is invalid'}})

        with self.assertRaises(PagamentoFalhouError) as ctx:
            self.gateway.criar_reembolso('pay_1', 999999, {})

        self.assertIn('The amount is invalid', ctx.exception.message)
        self.assertEqual(request_mock.call_args[0][1], 'https://api.razorpay.com/v1/payments/pay_1/refund')


class TestPagamentoGatewayMock(unittest.TestCase):

    def test_fluxo_de_pagamento_simulado(self):
        gateway = PagamentoGatewayMock()
        pedido = gateway.criar_pedido(70564, 'INR', 'recibo_1', {'carrinho_id': '5'})

        pagamento_id = gateway.registrar_pagamento(pedido['id'])
        pagamento = gateway.buscar_pagamento(pagamento_id)

        self.assertEqual(pagamento['amount'], 70564)
        self.assertEqual(pagamento['notes'], {'carrinho_id': '5'})
        self.assertTrue(gateway.verificar_assinatura(pedido['id'], pagamento_id,
                                                     gateway.assinar(pedido['id'], pagamento_id)))

    def test_pagamento_desconhecido(self):
        with self.assertRaises(PagamentoFalhouError):
            PagamentoGatewayMock().buscar_pagamento('pay_inexistente')


class TestEmailServiceGateway(SimpleTestCase):

    def setUp(self):
        self.pedido = Pedido(
            usuario_id=1, numero_pedido='DF2601-ABC123',
            itens=[ItemPedido(produto_id=1, variante_id=11, nome='Manga', preco=Decimal('299.00'), quantidade=2)],
            subtotal=Decimal('598.00'), desconto=Decimal('0.00'), frete=Decimal('0.00'),
            imposto=Decimal('107.64'), total=Decimal('705.64'),
        )
        self.usuario = Usuario(id=1, email='asha@example.com', nome='Asha')

    def test_confirmacao_enviada(self):
        self.assertTrue(EmailServiceGateway().enviar_confirmacao_pedido(self.pedido, self.usuario))

        self.assertEqual(len(mail.outbox), 1)
        self.assertIn('DF2601-ABC123', mail.outbox[0].subject)
        self.assertIn('705.64', mail.outbox[0].body)

    @patch('desidratados.infrastructure.gateways.send_mail', side_effect=ConnectionRefusedError())
    def test_falha_de_envio_nao_propaga(self, _send_mail):
        with self.assertLogs('desidratados.infrastructure.gateways', level='ERROR'):
            self.assertFalse(EmailServiceGateway().enviar_notificacao_envio(self.pedido, self.usuario))
