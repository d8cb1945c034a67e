import json
from datetime import timedelta
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase

from desidratados.core import dependency_injection as di
from desidratados.catalogo.models import Categoria, Produto, Variante
from desidratados.carrinho.models import Carrinho as CarrinhoModel
from desidratados.cupons.models import Cupom
from desidratados.pedidos.models import Pedido as PedidoModel, ConciliacaoPagamento


class LojaAPITestCase(APITestCase):
    """Cliente autenticado, um administrador e uma variante de 299.00 com 5 unidades."""

    def setUp(self):
        User = get_user_model()
        self.cliente = User.objects.create_user(email='cliente@example.com', password='senha123',
                                                first_name='Asha')
        self.admin = User.objects.create_user(email='admin@example.com', password='senha123', is_staff=True)

        categoria = Categoria.objects.create(nome='Frutas Desidratadas')
        self.produto = Produto.objects.create(categoria=categoria, nome='Manga Desidratada',
                                              descricao='Fatias de manga', preco_base=Decimal('299.00'))
        self.variante = Variante.objects.create(produto=self.produto, tamanho='250g', peso=Decimal('250'),
                                                unidade_peso='g', preco=Decimal('299.00'), estoque=5)
        self.endereco = {
            'nome': 'Asha', 'rua': 'MG Road 10', 'cidade': 'Pune', 'estado': 'MH',
            'cep': '411001', 'telefone': '9999999999',
        }
        self.gateway = di.get_pagamento_gateway()
        self.client.force_authenticate(self.cliente)

    def adicionar_ao_carrinho(self, quantidade=2):
        return self.client.post(reverse('api_carrinho_adicionar'), {
            'produto_id': self.produto.pk, 'variante_id': self.variante.pk, 'quantidade': quantidade,
        }, format='json')

    def pagar(self):
        """Cria o pedido no gateway, simula o pagamento e devolve o corpo para a verificação."""
        resposta = self.client.post(reverse('api_pagamento_criar_pedido'), {
            'tipo_entrega': 'entrega_domicilio', 'endereco_entrega': self.endereco,
        }, format='json')
        self.assertEqual(resposta.status_code, status.HTTP_201_CREATED)
        gateway_pedido_id = resposta.data['gateway_pedido_id']
        pagamento_id = self.gateway.registrar_pagamento(gateway_pedido_id)
        return {
            'gateway_pedido_id': gateway_pedido_id,
            'gateway_pagamento_id': pagamento_id,
            'assinatura': self.gateway.assinar(gateway_pedido_id, pagamento_id),
            'carrinho_id': resposta.data['carrinho_id'],
            'tipo_entrega': 'entrega_domicilio',
            'endereco_entrega': self.endereco,
        }

    def finalizar_compra(self):
        self.adicionar_ao_carrinho()
        return self.client.post(reverse('api_pagamento_verificar'), self.pagar(), format='json')


# ====================================================================
# 1. CATÁLOGO E CARRINHO
# ====================================================================

class CatalogoAPITestCase(LojaAPITestCase):

    def test_catalogo_e_publico(self):
        self.client.force_authenticate(None)

        resposta = self.client.get(reverse('api_produtos'))

        self.assertEqual(resposta.status_code, status.HTTP_200_OK)
        self.assertEqual(resposta.data[0]['nome'], 'Manga Desidratada')
        self.assertEqual(resposta.data[0]['estoque_total'], 5)

    def test_detalhe_por_slug(self):
        resposta = self.client.get(reverse('api_produto_detalhe', args=[self.produto.slug]))
        self.assertEqual(resposta.data['id'], self.produto.pk)

    def test_produto_inexistente(self):
        resposta = self.client.get(reverse('api_produto_detalhe', args=['nao-existe']))
        self.assertEqual(resposta.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(resposta.data['codigo'], 'nao_encontrado')


class CarrinhoAPITestCase(LojaAPITestCase):

    def test_carrinho_exige_login(self):
        self.client.force_authenticate(None)
        resposta = self.client.get(reverse('api_carrinho'))
        self.assertIn(resposta.status_code, (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN))

    def test_adicionar_item_calcula_totais(self):
        """
        Cenário: 2 x 299 devolve o carrinho com frete grátis e 18% de imposto.
        """
        resposta = self.adicionar_ao_carrinho()

        self.assertEqual(resposta.status_code, status.HTTP_201_CREATED)
        self.assertEqual(resposta.data['subtotal'], '598.00')
        self.assertEqual(resposta.data['frete'], '0.00')
        self.assertEqual(resposta.data['imposto'], '107.64')
        self.assertEqual(resposta.data['total'], '705.64')
        self.assertEqual(resposta.data['quantidade_itens'], 2)

    def test_estoque_insuficiente_informa_disponivel(self):
        resposta = self.adicionar_ao_carrinho(quantidade=6)

        self.assertEqual(resposta.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(resposta.data['codigo'], 'estoque_insuficiente')
        self.assertEqual(resposta.data['disponivel'], 5)

    def test_quantidade_invalida_e_recusada_pelo_serializer(self):
        resposta = self.adicionar_ao_carrinho(quantidade=0)
        self.assertEqual(resposta.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('quantidade', resposta.data)

    def test_aplicar_e_remover_cupom(self):
        Cupom.objects.create(codigo='DESC10', tipo_desconto='percentual', valor_desconto=Decimal('10'),
                             data_inicio=timezone.now() - timedelta(days=1),
                             data_fim=timezone.now() + timedelta(days=1))
        self.adicionar_ao_carrinho()

        resposta = self.client.post(reverse('api_carrinho_aplicar_cupom'), {'codigo': 'desc10'}, format='json')
        self.assertEqual(resposta.data['total'], '635.08')
        self.assertEqual(resposta.data['cupom']['codigo'], 'DESC10')

        resposta = self.client.delete(reverse('api_carrinho_remover_cupom'))
        self.assertIsNone(resposta.data['cupom'])
        self.assertEqual(resposta.data['total'], '705.64')

    def test_cupom_inexistente(self):
        self.adicionar_ao_carrinho()
        resposta = self.client.post(reverse('api_carrinho_aplicar_cupom'), {'codigo': 'NADA'}, format='json')
        self.assertEqual(resposta.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(resposta.data['codigo'], 'nao_encontrado')

    def test_remover_item(self):
        self.adicionar_ao_carrinho()
        resposta = self.client.delete(reverse('api_carrinho_remover', args=[self.produto.pk, self.variante.pk]))
        self.assertEqual(resposta.data['itens'], [])

    def test_validar_cupom_publico(self):
        Cupom.objects.create(codigo='FIXO50', tipo_desconto='fixo', valor_desconto=Decimal('50'),
                             data_inicio=timezone.now() - timedelta(days=1),
                             data_fim=timezone.now() + timedelta(days=1))
        self.client.force_authenticate(None)

        resposta = self.client.post(reverse('api_cupom_validar'), {'codigo': 'fixo50', 'subtotal': '300'},
                                    format='json')

        self.assertEqual(resposta.status_code, status.HTTP_200_OK)
        self.assertEqual(resposta.data['desconto'], '50.00')


# ====================================================================
# 2. CHECKOUT E PAGAMENTO
# ====================================================================

class CheckoutAPITestCase(LojaAPITestCase):

    def test_fluxo_completo_de_compra(self):
        """
        Cenário: Carrinho -> pedido no gateway -> pagamento -> verificação -> pedido confirmado.
        """
        # ARRANGE
        self.adicionar_ao_carrinho()
        dados = self.pagar()
        self.assertEqual(self.gateway.pedidos[dados['gateway_pedido_id']]['amount'], 70564)

        # ACT
        resposta = self.client.post(reverse('api_pagamento_verificar'), dados, format='json')

        # ASSERT
        self.assertEqual(resposta.status_code, status.HTTP_201_CREATED)
        self.assertTrue(resposta.data['numero_pedido'].startswith('DF'))
        self.assertEqual(resposta.data['pedido']['total'], '705.64')
        self.assertEqual(resposta.data['pedido']['status'], 'confirmado')

        self.variante.refresh_from_db()
        self.assertEqual(self.variante.estoque, 3)
        self.assertFalse(CarrinhoModel.objects.filter(usuario=self.cliente).exists())
        self.assertEqual(ConciliacaoPagamento.objects.get().status, 'convertido')

    def test_verificacao_repetida_nao_duplica_pedido(self):
        self.adicionar_ao_carrinho()
        dados = self.pagar()

        primeira = self.client.post(reverse('api_pagamento_verificar'), dados, format='json')
        segunda = self.client.post(reverse('api_pagamento_verificar'), dados, format='json')

        self.assertEqual(primeira.data['pedido_id'], segunda.data['pedido_id'])
        self.assertEqual(PedidoModel.objects.count(), 1)

    def test_assinatura_invalida(self):
        self.adicionar_ao_carrinho()
        dados = self.pagar()
        dados['assinatura'] = '0' * 64

        resposta = self.client.post(reverse('api_pagamento_verificar'), dados, format='json')

        self.assertEqual(resposta.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(resposta.data['codigo'], 'assinatura_invalida')
        self.assertEqual(PedidoModel.objects.count(), 0)
        self.assertTrue(CarrinhoModel.objects.filter(usuario=self.cliente).exists())

    def test_criar_pedido_com_carrinho_vazio(self):
        resposta = self.client.post(reverse('api_pagamento_criar_pedido'), {'tipo_entrega': 'retirada_loja'},
                                    format='json')
        self.assertEqual(resposta.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(resposta.data['codigo'], 'carrinho_vazio')

    def test_entrega_sem_endereco(self):
        self.adicionar_ao_carrinho()
        resposta = self.client.post(reverse('api_pagamento_criar_pedido'), {'tipo_entrega': 'entrega_domicilio'},
                                    format='json')
        self.assertEqual(resposta.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('endereco_entrega', resposta.data)

    def test_reembolso_parcial_pelo_cliente(self):
        pedido_id = self.finalizar_compra().data['pedido_id']

        resposta = self.client.post(reverse('api_pagamento_reembolso', args=[pedido_id]),
                                    {'valor': '100.00', 'motivo': 'Pacote amassado'}, format='json')

        self.assertEqual(resposta.status_code, status.HTTP_200_OK)
        self.assertEqual(resposta.data['pedido']['pagamento']['status'], 'parcialmente_reembolsado')

    def test_webhook_com_assinatura_invalida(self):
        self.client.force_authenticate(None)
        resposta = self.client.post(reverse('api_pagamento_webhook'), data=b'{"event": "payment.captured"}',
                                    content_type='application/json', HTTP_X_RAZORPAY_SIGNATURE='errada')
        self.assertEqual(resposta.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(resposta.data['codigo'], 'assinatura_invalida')

    def test_webhook_assinado_e_aceito(self):
        self.client.force_authenticate(None)
        corpo = json.dumps({'event': 'order.paid', 'payload': {'order': {'entity': {'id': 'order_1'}}}}).encode()

        resposta = self.client.post(reverse('api_pagamento_webhook'), data=corpo, content_type='application/json',
                                    HTTP_X_RAZORPAY_SIGNATURE=self.gateway.assinar_webhook(corpo))

        self.assertEqual(resposta.status_code, status.HTTP_200_OK)
        self.assertTrue(resposta.data['recebido'])


# ====================================================================
# 3. PEDIDOS DO CLIENTE E ADMINISTRAÇÃO
# ====================================================================

class PedidosAPITestCase(LojaAPITestCase):

    def test_cancelar_devolve_estoque(self):
        pedido_id = self.finalizar_compra().data['pedido_id']

        resposta = self.client.post(reverse('api_pedido_cancelar', args=[pedido_id]), {'motivo': 'Desisti'},
                                    format='json')

        self.assertEqual(resposta.data['status'], 'cancelado')
        self.variante.refresh_from_db()
        self.assertEqual(self.variante.estoque, 5)

    def test_pedido_de_outro_cliente(self):
        pedido_id = self.finalizar_compra().data['pedido_id']
        outro = get_user_model().objects.create_user(email='outro@example.com', password='senha123')
        self.client.force_authenticate(outro)

        resposta = self.client.get(reverse('api_pedido_detalhe', args=[pedido_id]))

        self.assertEqual(resposta.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(resposta.data['codigo'], 'permissao_negada')

    def test_area_administrativa_exige_staff(self):
        resposta = self.client.get(reverse('api_admin_pedidos'))
        self.assertEqual(resposta.status_code, status.HTTP_403_FORBIDDEN)

    def test_admin_envia_e_cliente_nao_cancela_mais(self):
        pedido_id = self.finalizar_compra().data['pedido_id']
        self.client.force_authenticate(self.admin)

        resposta = self.client.put(reverse('api_admin_pedido_status', args=[pedido_id]),
                                   {'status': 'enviado', 'observacao': 'Coletado'}, format='json')
        self.assertEqual(resposta.status_code, status.HTTP_200_OK)
        self.assertEqual([h['status'] for h in resposta.data['historico']], ['confirmado', 'enviado'])

        self.client.force_authenticate(self.cliente)
        resposta = self.client.post(reverse('api_pedido_cancelar', args=[pedido_id]), {}, format='json')
        self.assertEqual(resposta.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(resposta.data['codigo'], 'estado_pedido_invalido')

    def test_admin_cria_cupom(self):
        self.client.force_authenticate(self.admin)
        resposta = self.client.post(reverse('api_admin_cupons'), {
            'codigo': 'natal25', 'tipo_desconto': 'percentual', 'valor_desconto': '25',
            'data_inicio': timezone.now().isoformat(),
            'data_fim': (timezone.now() + timedelta(days=30)).isoformat(),
        }, format='json')

        self.assertEqual(resposta.status_code, status.HTTP_201_CREATED)
        self.assertEqual(resposta.data['codigo'], 'NATAL25')
        self.assertTrue(Cupom.objects.filter(codigo='NATAL25').exists())

    def test_avaliacao_com_compra_verificada(self):
        self.finalizar_compra()

        resposta = self.client.post(reverse('api_avaliacoes_produto', args=[self.produto.pk]),
                                    {'nota': 5, 'titulo': 'Crocante'}, format='json')

        self.assertEqual(resposta.status_code, status.HTTP_201_CREATED)
        self.assertTrue(resposta.data['compra_verificada'])
        self.produto.refresh_from_db()
        self.assertEqual(self.produto.avaliacao_quantidade, 1)
