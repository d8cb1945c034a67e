# desidratados/core/testes.py

import json
import unittest
from unittest.mock import Mock, ANY
from decimal import Decimal
from datetime import timedelta

from desidratados.core.entities import (
    Produto, Variante, Carrinho, ItemCarrinho, Cupom, CupomAplicado, Pedido, PagamentoPedido,
    EnderecoEntrega, Usuario, UsoCupom, ListaDesejos, ItemListaDesejos, agora, para_unidade_minima,
)
from desidratados.core.use_cases import (
    ValidarCupomUseCase, GerenciarCuponsAdminUseCase, GerenciarCarrinhoUseCase, CheckoutUseCase,
    ReembolsoUseCase, GerenciarPedidoClienteUseCase, GerenciarPedidosAdminUseCase, AvaliacoesUseCase,
    ListaDesejosUseCase,
)
from desidratados.core.exceptions import (
    DadosInvalidosError, PermissaoNegadaError, ItemNaoEncontradoError, CupomNaoEncontradoError,
    ItemIndisponivelError, EstoqueInsuficienteError, CarrinhoVazioError, CupomInelegivelError,
    AssinaturaInvalidaError, PagamentoNaoCapturadoError, PagamentoDivergenteError,
    EstadoPedidoInvalidoError, GatewayIndisponivelError,
)


def criar_produto(estoque=10, preco=Decimal('299.00'), ativo=True, disponivel=True):
    return Produto(
        id=1, nome='Manga Desidratada', slug='frutas-manga', preco_base=preco, categoria_id=3,
        ativo=ativo,
        variantes=[Variante(id=11, tamanho='250g', peso=Decimal('250'), unidade_peso='g',
                            preco=preco, estoque=estoque, disponivel=disponivel)],
    )


def criar_carrinho(*precos_quantidades, cupom=None, usuario_id=1):
    itens = [
        ItemCarrinho(produto_id=n + 1, variante_id=(n + 1) * 10 + 1, quantidade=q,
                     preco_unitario=Decimal(p), nome=f'Produto {n + 1}')
        for n, (p, q) in enumerate(precos_quantidades)
    ]
    carrinho = Carrinho(id=5, usuario_id=usuario_id, itens=itens, cupom=cupom)
    return carrinho.recalcular_totais()


def criar_cupom(**kwargs):
    dados = dict(
        id=7, codigo='desc10', tipo_desconto='percentual', valor_desconto=Decimal('10'),
        data_inicio=agora() - timedelta(days=1), data_fim=agora() + timedelta(days=30),
    )
    dados.update(kwargs)
    return Cupom(**dados)


def criar_pedido(status='confirmado', total=Decimal('705.64'), usuario_id=1):
    return Pedido(
        id=10, usuario_id=usuario_id, numero_pedido='DF2601-ABC123',
        itens=[], subtotal=Decimal('598.00'), desconto=Decimal('0.00'), frete=Decimal('0.00'),
        imposto=Decimal('107.64'), total=total, status=status,
        pagamento=PagamentoPedido(status='concluido', gateway_pedido_id='order_1',
                                  gateway_pagamento_id='pay_1'),
    )


def aplicar_sob_trava(pedido_repo_mock):
    """Imita atualizar_com_trava/cancelar: relê o pedido via buscar_por_id e aplica a alteração."""
    def aplicar(pedido_id, alteracao):
        pedido = pedido_repo_mock.buscar_por_id(pedido_id)
        alteracao(pedido)
        return pedido
    return aplicar


# ====================================================================
# 1. TOTAIS DO CARRINHO
# ====================================================================

class TestTotaisCarrinho(unittest.TestCase):

    def test_frete_gratis_acima_do_limite(self):
        """
        Cenário: 2 x 299 = 598, sem cupom. Frete grátis e imposto de 18%.
        """
        carrinho = criar_carrinho(('299.00', 2))

        self.assertEqual(carrinho.subtotal, Decimal('598.00'))
        self.assertEqual(carrinho.frete, Decimal('0.00'))
        self.assertEqual(carrinho.imposto, Decimal('107.64'))
        self.assertEqual(carrinho.total, Decimal('705.64'))

    def test_cupom_percentual_arredonda_no_final(self):
        """
        Cenário: 10% sobre 598. O imposto exato é 96.876 e o total 635.076.
        """
        cupom = CupomAplicado(codigo='DESC10', valor=Decimal('10'), tipo='percentual')
        carrinho = criar_carrinho(('299.00', 2), cupom=cupom)

        self.assertEqual(carrinho.desconto, Decimal('59.80'))
        self.assertEqual(carrinho.imposto, Decimal('96.88'))
        self.assertEqual(carrinho.total, Decimal('635.08'))

    def test_frete_cobrado_abaixo_do_limite(self):
        """
        Cenário: Subtotal de 400 paga frete de 49.
        """
        carrinho = criar_carrinho(('200.00', 2))

        self.assertEqual(carrinho.frete, Decimal('49.00'))
        self.assertEqual(carrinho.imposto, Decimal('72.00'))
        self.assertEqual(carrinho.total, Decimal('521.00'))

    def test_limite_de_frete_e_inclusivo(self):
        """
        Cenário: Exatamente 500 já tem frete grátis; 499.99 não.
        """
        self.assertEqual(criar_carrinho(('500.00', 1)).frete, Decimal('0.00'))
        self.assertEqual(criar_carrinho(('500.00', 1)).total, Decimal('590.00'))
        self.assertEqual(criar_carrinho(('499.99', 1)).frete, Decimal('49.00'))

    def test_desconto_calculado_sobre_o_subtotal_antes_do_limite_de_frete(self):
        """
        Cenário: 520 com 10% de desconto fica abaixo de 500 e volta a pagar frete.
        """
        cupom = CupomAplicado(codigo='DESC10', valor=Decimal('10'), tipo='percentual')
        carrinho = criar_carrinho(('520.00', 1), cupom=cupom)

        self.assertEqual(carrinho.desconto, Decimal('52.00'))
        self.assertEqual(carrinho.frete, Decimal('49.00'))

    def test_cupom_fixo_nunca_excede_o_subtotal(self):
        cupom = CupomAplicado(codigo='FIXO', valor=Decimal('1000'), tipo='fixo')
        carrinho = criar_carrinho(('100.00', 1), cupom=cupom)

        self.assertEqual(carrinho.desconto, Decimal('100.00'))
        self.assertEqual(carrinho.imposto, Decimal('0.00'))

    def test_carrinho_vazio_tem_totais_zerados_mais_frete(self):
        carrinho = Carrinho(usuario_id=1).recalcular_totais()
        self.assertEqual(carrinho.subtotal, Decimal('0.00'))
        self.assertEqual(carrinho.frete, Decimal('49.00'))

    def test_conversao_para_unidade_minima(self):
        self.assertEqual(para_unidade_minima(Decimal('705.64')), 70564)
        self.assertEqual(para_unidade_minima(Decimal('635.08')), 63508)


# ====================================================================
# 2. REGRAS DE CUPOM
# ====================================================================

class TestRegrasCupom(unittest.TestCase):

    def test_percentual_respeita_desconto_maximo(self):
        cupom = criar_cupom(valor_desconto=Decimal('50'), desconto_maximo=Decimal('100'))
        desconto, mensagem = cupom.calcular_desconto(Decimal('1000'))
        self.assertEqual(desconto, Decimal('100.00'))
        self.assertIsNone(mensagem)

    def test_abaixo_da_compra_minima_desconto_zero(self):
        cupom = criar_cupom(compra_minima=Decimal('500'))
        desconto, mensagem = cupom.calcular_desconto(Decimal('499.99'))
        self.assertEqual(desconto, Decimal('0'))
        self.assertIn('Compra mínima', mensagem)

    def test_codigo_normalizado_em_maiusculas(self):
        self.assertEqual(criar_cupom(codigo='  verao20 ').codigo, 'VERAO20')

    def test_ordem_das_regras_de_elegibilidade(self):
        """
        Cenário: Cupom expirado e já usado informa primeiro a expiração.
        """
        cupom = criar_cupom(data_fim=agora() - timedelta(hours=1), usos=[UsoCupom(usuario_id=1)])
        pode, motivo = cupom.pode_ser_usado_por(1)
        self.assertFalse(pode)
        self.assertEqual(motivo, "Cupom inválido ou expirado.")

    def test_limite_por_usuario(self):
        cupom = criar_cupom(usos=[UsoCupom(usuario_id=1)])
        self.assertFalse(cupom.pode_ser_usado_por(1)[0])
        self.assertTrue(cupom.pode_ser_usado_por(2)[0])

    def test_limite_global_esgotado(self):
        cupom = criar_cupom(limite_uso=1, usos=[UsoCupom(usuario_id=9)])
        self.assertFalse(cupom.esta_valido())

    def test_apenas_primeiro_pedido(self):
        cupom = criar_cupom(apenas_primeiro_pedido=True)
        pode, motivo = cupom.pode_ser_usado_por(1, pedidos_concluidos=1)
        self.assertFalse(pode)
        self.assertIn('primeiro pedido', motivo)

    def test_escopo_por_produto_ou_categoria(self):
        cupom = criar_cupom(produtos_aplicaveis=[1], categorias_aplicaveis=[4])
        self.assertTrue(cupom.aplica_se_a([(1, 3)]))
        self.assertTrue(cupom.aplica_se_a([(2, 4)]))
        self.assertFalse(cupom.aplica_se_a([(2, 3)]))


class TestValidarCupomUseCase(unittest.TestCase):

    def setUp(self):
        self.cupom_repo_mock = Mock()
        self.pedido_repo_mock = Mock()
        self.produto_repo_mock = Mock()
        self.use_case = ValidarCupomUseCase(
            cupom_repo=self.cupom_repo_mock,
            pedido_repo=self.pedido_repo_mock,
            produto_repo=self.produto_repo_mock,
        )

    def test_cupom_valido_retorna_desconto(self):
        self.cupom_repo_mock.buscar_por_codigo.return_value = criar_cupom()

        cupom, desconto = self.use_case.executar('desc10', 1, criar_carrinho(('299.00', 2)))

        self.cupom_repo_mock.buscar_por_codigo.assert_called_once_with('DESC10')
        self.assertEqual(desconto, Decimal('59.80'))

    def test_cupom_inexistente(self):
        self.cupom_repo_mock.buscar_por_codigo.return_value = None
        with self.assertRaises(CupomNaoEncontradoError):
            self.use_case.executar('NADA', 1, criar_carrinho(('299.00', 1)))

    def test_cupom_inativo_e_inelegivel(self):
        """
        Cenário: O código existe mas está desativado. Responde 400, não 404.
        """
        self.cupom_repo_mock.buscar_por_codigo.return_value = criar_cupom(ativo=False)

        with self.assertRaises(CupomInelegivelError) as ctx:
            self.use_case.executar('DESC10', 1, criar_carrinho(('299.00', 1)))
        self.assertEqual(ctx.exception.status_http, 400)

        with self.assertRaises(CupomInelegivelError):
            self.use_case.simular('DESC10', Decimal('500'))

    def test_carrinho_vazio(self):
        with self.assertRaises(CarrinhoVazioError):
            self.use_case.executar('DESC10', 1, Carrinho(usuario_id=1))

    def test_primeiro_pedido_consulta_pedidos_pagos(self):
        self.cupom_repo_mock.buscar_por_codigo.return_value = criar_cupom(apenas_primeiro_pedido=True)
        self.pedido_repo_mock.contar_pedidos_pagos.return_value = 2

        with self.assertRaises(CupomInelegivelError):
            self.use_case.executar('DESC10', 1, criar_carrinho(('299.00', 2)))
        self.pedido_repo_mock.contar_pedidos_pagos.assert_called_once_with(1)

    def test_fora_do_escopo_dos_itens(self):
        self.cupom_repo_mock.buscar_por_codigo.return_value = criar_cupom(produtos_aplicaveis=[99])
        self.produto_repo_mock.buscar_por_id.return_value = criar_produto()

        with self.assertRaises(CupomInelegivelError):
            self.use_case.executar('DESC10', 1, criar_carrinho(('299.00', 2)))

    def test_compra_minima_nao_atingida(self):
        self.cupom_repo_mock.buscar_por_codigo.return_value = criar_cupom(compra_minima=Decimal('1000'))
        with self.assertRaises(CupomInelegivelError) as ctx:
            self.use_case.executar('DESC10', 1, criar_carrinho(('299.00', 2)))
        self.assertIn('Compra mínima', ctx.exception.message)

    def test_simular_sem_usuario(self):
        self.cupom_repo_mock.buscar_por_codigo.return_value = criar_cupom(tipo_desconto='fixo',
                                                                         valor_desconto=Decimal('75'))
        resultado = self.use_case.simular('desc10', Decimal('300'))
        self.assertEqual(resultado['desconto'], Decimal('75.00'))


class TestGerenciarCuponsAdminUseCase(unittest.TestCase):

    def setUp(self):
        self.cupom_repo_mock = Mock()
        self.cupom_repo_mock.existe_codigo.return_value = False
        self.cupom_repo_mock.salvar.side_effect = lambda c: c
        self.use_case = GerenciarCuponsAdminUseCase(self.cupom_repo_mock)
        self.dados = {
            'codigo': 'novo15', 'tipo_desconto': 'percentual', 'valor_desconto': Decimal('15'),
            'data_inicio': agora(), 'data_fim': agora() + timedelta(days=10),
        }

    def test_criar_normaliza_codigo(self):
        cupom = self.use_case.criar(self.dados)
        self.assertEqual(cupom.codigo, 'NOVO15')

    def test_codigo_duplicado(self):
        self.cupom_repo_mock.existe_codigo.return_value = True
        with self.assertRaises(DadosInvalidosError):
            self.use_case.criar(self.dados)

    def test_percentual_acima_de_cem(self):
        with self.assertRaises(DadosInvalidosError):
            self.use_case.criar({**self.dados, 'valor_desconto': Decimal('120')})

    def test_datas_invertidas(self):
        with self.assertRaises(DadosInvalidosError):
            self.use_case.criar({**self.dados, 'data_fim': agora() - timedelta(days=1)})

    def test_criar_em_lote(self):
        cupons = self.use_case.criar_em_lote('lote', 3, self.dados)
        self.assertEqual(len(cupons), 3)
        self.assertEqual(len({c.codigo for c in cupons}), 3)
        self.assertTrue(all(c.codigo.startswith('LOTE') and len(c.codigo) == 10 for c in cupons))

    def test_alternar_ativo(self):
        self.cupom_repo_mock.buscar_por_id.return_value = criar_cupom(ativo=True)
        self.assertFalse(self.use_case.alternar_ativo(7).ativo)


# ====================================================================
# 3. CARRINHO
# ====================================================================

class TestGerenciarCarrinhoUseCase(unittest.TestCase):

    def setUp(self):
        self.carrinho_repo_mock = Mock()
        self.produto_repo_mock = Mock()
        self.validar_cupom_mock = Mock()
        self.carrinho_repo_mock.salvar.side_effect = lambda c: c.recalcular_totais()
        self.use_case = GerenciarCarrinhoUseCase(
            carrinho_repo=self.carrinho_repo_mock,
            produto_repo=self.produto_repo_mock,
            validar_cupom=self.validar_cupom_mock,
        )

    def test_adicionar_item_captura_preco(self):
        """
        Cenário: Adicionar um item a um carrinho vazio com sucesso.
        """
        # ARRANGE
        self.produto_repo_mock.buscar_por_id.return_value = criar_produto()
        self.carrinho_repo_mock.buscar_ou_criar.return_value = Carrinho(id=5, usuario_id=1)

        # ACT
        carrinho = self.use_case.adicionar_item(1, 1, 11, 2)

        # ASSERT
        self.assertEqual(len(carrinho.itens), 1)
        self.assertEqual(carrinho.itens[0].preco_unitario, Decimal('299.00'))
        self.assertEqual(carrinho.total, Decimal('705.64'))
        self.carrinho_repo_mock.salvar.assert_called_once()

    def test_adicionar_item_existente_soma_quantidade(self):
        self.produto_repo_mock.buscar_por_id.return_value = criar_produto()
        self.carrinho_repo_mock.buscar_ou_criar.return_value = criar_carrinho(('299.00', 1))
        self.carrinho_repo_mock.buscar_ou_criar.return_value.itens[0].variante_id = 11

        carrinho = self.use_case.adicionar_item(1, 1, 11, 3)

        self.assertEqual(len(carrinho.itens), 1)
        self.assertEqual(carrinho.itens[0].quantidade, 4)

    def test_adicionar_alem_do_estoque(self):
        """
        Cenário: Tentar adicionar mais itens do que o disponível em estoque.
        """
        self.produto_repo_mock.buscar_por_id.return_value = criar_produto(estoque=2)
        self.carrinho_repo_mock.buscar_ou_criar.return_value = Carrinho(usuario_id=1)

        with self.assertRaises(EstoqueInsuficienteError) as ctx:
            self.use_case.adicionar_item(1, 1, 11, 3)

        self.assertEqual(ctx.exception.detalhes, {'disponivel': 2})
        self.carrinho_repo_mock.salvar.assert_not_called()

    def test_quantidade_fora_do_intervalo(self):
        for quantidade in (0, 100, 'abc'):
            with self.assertRaises(DadosInvalidosError):
                self.use_case.adicionar_item(1, 1, 11, quantidade)

    def test_produto_inativo(self):
        self.produto_repo_mock.buscar_por_id.return_value = criar_produto(ativo=False)
        with self.assertRaises(ItemIndisponivelError):
            self.use_case.adicionar_item(1, 1, 11, 1)

    def test_remover_item_inexistente(self):
        self.carrinho_repo_mock.buscar_por_usuario.return_value = criar_carrinho(('299.00', 1))
        with self.assertRaises(ItemNaoEncontradoError):
            self.use_case.remover_item(1, 99, 99)

    def test_aplicar_cupom_grava_copia_dos_termos(self):
        self.carrinho_repo_mock.buscar_por_usuario.return_value = criar_carrinho(('299.00', 2))
        self.validar_cupom_mock.executar.return_value = (criar_cupom(), Decimal('59.80'))

        carrinho = self.use_case.aplicar_cupom(1, 'desc10')

        self.assertEqual(carrinho.cupom.codigo, 'DESC10')
        self.assertEqual(carrinho.total, Decimal('635.08'))

    def test_aplicar_cupom_em_carrinho_vazio(self):
        self.carrinho_repo_mock.buscar_por_usuario.return_value = None
        with self.assertRaises(CarrinhoVazioError):
            self.use_case.aplicar_cupom(1, 'DESC10')

    def test_validar_carrinho_ajusta_estoque_e_preco(self):
        carrinho = criar_carrinho(('299.00', 5))
        carrinho.itens[0].variante_id = 11
        self.carrinho_repo_mock.buscar_ou_criar.return_value = carrinho
        self.produto_repo_mock.buscar_por_id.return_value = criar_produto(estoque=3, preco=Decimal('319.00'))

        resultado = self.use_case.validar_carrinho(1)

        tipos = [p['tipo'] for p in resultado['problemas']]
        self.assertFalse(resultado['valido'])
        self.assertEqual(tipos, ['estoque_insuficiente', 'preco_alterado'])
        self.assertEqual(resultado['carrinho'].itens[0].quantidade, 3)
        self.assertEqual(resultado['carrinho'].itens[0].preco_unitario, Decimal('319.00'))

    def test_mesclar_limita_ao_estoque_e_ignora_indisponiveis(self):
        self.carrinho_repo_mock.buscar_ou_criar.return_value = Carrinho(usuario_id=1)
        self.produto_repo_mock.buscar_por_id.side_effect = (
            lambda pid: criar_produto(estoque=4) if pid == 1 else criar_produto(ativo=False))

        carrinho = self.use_case.mesclar_carrinho(1, [
            {'produto_id': 1, 'variante_id': 11, 'quantidade': 10},
            {'produto_id': 2, 'variante_id': 11, 'quantidade': 1},
        ])

        self.assertEqual(len(carrinho.itens), 1)
        self.assertEqual(carrinho.itens[0].quantidade, 4)


# ====================================================================
# 4. CHECKOUT E PAGAMENTO
# ====================================================================

class TestCheckoutUseCase(unittest.TestCase):

    def setUp(self):
        self.carrinho_repo_mock = Mock()
        self.produto_repo_mock = Mock()
        self.pedido_repo_mock = Mock()
        self.conciliacao_repo_mock = Mock()
        self.usuario_repo_mock = Mock()
        self.gateway_mock = Mock()
        self.notificacao_mock = Mock()

        self.use_case = CheckoutUseCase(
            carrinho_repo=self.carrinho_repo_mock,
            produto_repo=self.produto_repo_mock,
            pedido_repo=self.pedido_repo_mock,
            conciliacao_repo=self.conciliacao_repo_mock,
            usuario_repo=self.usuario_repo_mock,
            pagamento_gateway=self.gateway_mock,
            notificacao_service=self.notificacao_mock,
        )
        self.endereco = EnderecoEntrega(nome='Asha', rua='MG Road 10', cidade='Pune', cep='411001')
        self.carrinho = criar_carrinho(('299.00', 2))

        self.gateway_mock.verificar_assinatura.return_value = True
        self.gateway_mock.buscar_pagamento.return_value = {
            'id': 'pay_1', 'status': 'captured', 'order_id': 'order_1', 'amount': 70564,
        }
        self.pedido_repo_mock.buscar_por_pagamento_id.return_value = None
        self.carrinho_repo_mock.buscar_por_id.return_value = self.carrinho
        self.pedido_repo_mock.converter_carrinho.return_value = criar_pedido()
        self.usuario_repo_mock.buscar_por_id.return_value = Usuario(id=1, email='asha@example.com')

    def _verificar(self, **kwargs):
        dados = dict(usuario_id=1, gateway_pedido_id='order_1', gateway_pagamento_id='pay_1',
                     assinatura='assinatura', carrinho_id=5, endereco=self.endereco)
        dados.update(kwargs)
        return self.use_case.verificar_pagamento(**dados)

    def test_criar_pedido_gateway_em_unidade_minima(self):
        self.carrinho_repo_mock.buscar_por_usuario.return_value = self.carrinho
        self.produto_repo_mock.buscar_por_id.side_effect = lambda pid: Produto(
            id=pid, nome='P', slug='p', preco_base=Decimal('299'),
            variantes=[Variante(id=pid * 10 + 1, tamanho='250g', peso=Decimal('250'), unidade_peso='g',
                                preco=Decimal('299'), estoque=10)])
        self.gateway_mock.criar_pedido.return_value = {'id': 'order_1', 'amount': 70564, 'currency': 'INR'}

        resultado = self.use_case.criar_pedido_gateway(1, 'entrega_domicilio', self.endereco)

        valor, moeda = self.gateway_mock.criar_pedido.call_args[0][:2]
        self.assertEqual((valor, moeda), (70564, 'INR'))
        self.assertEqual(resultado['gateway_pedido_id'], 'order_1')
        self.assertEqual(resultado['carrinho_id'], 5)

    def test_entrega_domicilio_exige_endereco(self):
        with self.assertRaises(DadosInvalidosError):
            self.use_case.criar_pedido_gateway(1, 'entrega_domicilio', None)

    def test_criar_pedido_gateway_carrinho_vazio(self):
        self.carrinho_repo_mock.buscar_por_usuario.return_value = Carrinho(usuario_id=1)
        with self.assertRaises(CarrinhoVazioError):
            self.use_case.criar_pedido_gateway(1, 'retirada_loja')
        self.gateway_mock.criar_pedido.assert_not_called()

    def test_criar_pedido_gateway_com_item_fora_do_catalogo(self):
        self.carrinho_repo_mock.buscar_por_usuario.return_value = self.carrinho
        self.produto_repo_mock.buscar_por_id.return_value = None
        with self.assertRaises(ItemIndisponivelError):
            self.use_case.criar_pedido_gateway(1, 'retirada_loja')
        self.gateway_mock.criar_pedido.assert_not_called()

    def test_gateway_indisponivel_propaga(self):
        self.carrinho_repo_mock.buscar_por_usuario.return_value = self.carrinho
        self.produto_repo_mock.buscar_por_id.return_value = criar_produto()
        self.gateway_mock.criar_pedido.side_effect = GatewayIndisponivelError()
        with self.assertRaises(GatewayIndisponivelError):
            self.use_case.criar_pedido_gateway(1, 'retirada_loja')

    def test_verificar_pagamento_converte_carrinho(self):
        """
        Cenário: Pagamento assinado e capturado vira pedido e é conciliado.
        """
        pedido = self._verificar()

        self.assertEqual(pedido.id, 10)
        self.conciliacao_repo_mock.registrar_captura.assert_called_once()
        self.conciliacao_repo_mock.marcar_convertido.assert_called_once_with('pay_1', 10)
        kwargs = self.pedido_repo_mock.converter_carrinho.call_args.kwargs
        self.assertEqual(kwargs['total_esperado'], Decimal('705.64'))
        self.assertEqual(kwargs['pagamento'].status, 'concluido')
        self.notificacao_mock.enviar_confirmacao_pedido.assert_called_once()

    def test_assinatura_invalida_nao_toca_no_estado(self):
        self.gateway_mock.verificar_assinatura.return_value = False

        with self.assertRaises(AssinaturaInvalidaError):
            self._verificar()

        self.gateway_mock.buscar_pagamento.assert_not_called()
        self.pedido_repo_mock.converter_carrinho.assert_not_called()

    def test_pagamento_nao_capturado(self):
        self.gateway_mock.buscar_pagamento.return_value = {'id': 'pay_1', 'status': 'authorized'}
        with self.assertRaises(PagamentoNaoCapturadoError):
            self._verificar()
        self.pedido_repo_mock.converter_carrinho.assert_not_called()

    def test_valor_pago_divergente_registra_falha(self):
        self.gateway_mock.buscar_pagamento.return_value = {
            'id': 'pay_1', 'status': 'captured', 'order_id': 'order_1', 'amount': 100,
        }
        with self.assertRaises(PagamentoDivergenteError):
            self._verificar()
        self.conciliacao_repo_mock.marcar_falha.assert_called_once()

    def test_verificacao_repetida_devolve_o_mesmo_pedido(self):
        """
        Cenário: O pagamento já foi convertido. Nenhum novo pedido é criado.
        """
        existente = criar_pedido()
        self.pedido_repo_mock.buscar_por_pagamento_id.return_value = existente

        pedido = self._verificar()

        self.assertIs(pedido, existente)
        self.pedido_repo_mock.converter_carrinho.assert_not_called()
        self.gateway_mock.buscar_pagamento.assert_not_called()

    def test_pagamento_de_outro_usuario(self):
        self.pedido_repo_mock.buscar_por_pagamento_id.return_value = criar_pedido(usuario_id=2)
        with self.assertRaises(PermissaoNegadaError):
            self._verificar()

    def test_falha_na_notificacao_nao_desfaz_o_pedido(self):
        self.notificacao_mock.enviar_confirmacao_pedido.side_effect = Exception("SMTP fora do ar")

        pedido = self._verificar()

        self.assertEqual(pedido.numero_pedido, 'DF2601-ABC123')

    def test_conciliar_pendentes(self):
        registro = Mock(gateway_pagamento_id='pay_1', gateway_pedido_id='order_1', carrinho_id=5,
                        assinatura='assinatura', tipo_entrega='retirada_loja', endereco_entrega=None)
        self.conciliacao_repo_mock.listar_pendentes.return_value = [registro]

        resumo = self.use_case.conciliar_pendentes()

        self.assertEqual(resumo, {'convertidos': 1, 'ja_convertidos': 0, 'falhas': 0})
        kwargs = self.pedido_repo_mock.converter_carrinho.call_args.kwargs
        self.assertEqual(kwargs['total_esperado'], Decimal('705.64'))

    def test_webhook_com_assinatura_invalida(self):
        self.gateway_mock.verificar_assinatura_webhook.return_value = False
        with self.assertRaises(AssinaturaInvalidaError):
            self.use_case.processar_webhook(b'{}', 'assinatura')
        with self.assertRaises(AssinaturaInvalidaError):
            self.use_case.processar_webhook(b'{}', None)

    def test_webhook_pagamento_capturado_sem_pedido_registra_conciliacao(self):
        self.gateway_mock.verificar_assinatura_webhook.return_value = True
        self.conciliacao_repo_mock.buscar_por_pagamento_id.return_value = None
        corpo = json.dumps({
            'event': 'payment.captured',
            'payload': {'payment': {'entity': {
                'id': 'pay_9', 'order_id': 'order_9',
                'notes': {'carrinho_id': '5', 'usuario_id': '1', 'tipo_entrega': 'retirada_loja'},
            }}},
        }).encode()

        self.assertEqual(self.use_case.processar_webhook(corpo, 'assinatura'), {'recebido': True})

        registro = self.conciliacao_repo_mock.registrar_captura.call_args[0][0]
        self.assertEqual((registro.gateway_pagamento_id, registro.carrinho_id), ('pay_9', 5))

    def test_webhook_com_notas_malformadas_nao_quebra(self):
        """
        Cenário: Evento assinado com notas ilegíveis. É aceito e registrado no log, sem entrada de conciliação.
        """
        # ARRANGE
        self.gateway_mock.verificar_assinatura_webhook.return_value = True
        self.conciliacao_repo_mock.buscar_por_pagamento_id.return_value = None
        corpo = json.dumps({
            'event': 'payment.captured',
            'payload': {'payment': {'entity': {
                'id': 'pay_9', 'order_id': 'order_9',
                'notes': {'carrinho_id': 'abc', 'usuario_id': '1', 'endereco_entrega': '{nao e json'},
            }}},
        }).encode()

        # ACT
        with self.assertLogs('desidratados.core.use_cases', level='ERROR'):
            resposta = self.use_case.processar_webhook(corpo, 'assinatura')

        # ASSERT
        self.assertEqual(resposta, {'recebido': True})
        self.conciliacao_repo_mock.registrar_captura.assert_not_called()

    def test_webhook_evento_desconhecido_e_aceito(self):
        self.gateway_mock.verificar_assinatura_webhook.return_value = True
        resposta = self.use_case.processar_webhook(b'{"event": "invoice.paid"}', 'assinatura')
        self.assertTrue(resposta['recebido'])
        self.conciliacao_repo_mock.registrar_captura.assert_not_called()


class TestReembolsoUseCase(unittest.TestCase):

    def setUp(self):
        self.pedido_repo_mock = Mock()
        self.gateway_mock = Mock()
        self.pedido_repo_mock.atualizar_com_trava.side_effect = aplicar_sob_trava(self.pedido_repo_mock)
        self.gateway_mock.criar_reembolso.return_value = {'id': 'rfnd_1'}
        self.use_case = ReembolsoUseCase(self.pedido_repo_mock, self.gateway_mock)
        self.cliente = Usuario(id=1)

    def test_reembolso_parcial(self):
        self.pedido_repo_mock.buscar_por_id.return_value = criar_pedido()

        pedido = self.use_case.executar(10, self.cliente, valor='100.00')

        self.gateway_mock.criar_reembolso.assert_called_once()
        self.assertEqual(self.gateway_mock.criar_reembolso.call_args[0][:2], ('pay_1', 10000))
        self.assertEqual(pedido.pagamento.status, 'parcialmente_reembolsado')
        self.assertEqual(pedido.status, 'confirmado')
        self.assertEqual(pedido.valor_reembolsavel, Decimal('605.64'))

    def test_reembolso_total_do_restante(self):
        pedido = criar_pedido()
        pedido.pagamento.valor_reembolsado = Decimal('100.00')
        pedido.pagamento.status = 'parcialmente_reembolsado'
        self.pedido_repo_mock.buscar_por_id.return_value = pedido

        pedido = self.use_case.executar(10, self.cliente)

        self.assertEqual(self.gateway_mock.criar_reembolso.call_args[0][1], 60564)
        self.assertEqual(pedido.pagamento.status, 'reembolsado')
        self.assertEqual(pedido.status, 'reembolsado')

    def test_reembolso_soma_sobre_o_valor_gravado(self):
        """
        Cenário: Outro reembolso de 100 foi gravado depois da leitura. O acumulado considera os dois.
        """
        # ARRANGE
        self.pedido_repo_mock.buscar_por_id.return_value = criar_pedido()
        gravado = criar_pedido()
        gravado.pagamento.valor_reembolsado = Decimal('100.00')
        gravado.pagamento.status = 'parcialmente_reembolsado'

        def aplicar_no_gravado(pedido_id, alteracao):
            alteracao(gravado)
            return gravado
        self.pedido_repo_mock.atualizar_com_trava.side_effect = aplicar_no_gravado

        # ACT
        pedido = self.use_case.executar(10, self.cliente, valor='100.00')

        # ASSERT
        self.assertEqual(pedido.pagamento.valor_reembolsado, Decimal('200.00'))
        self.assertEqual(pedido.pagamento.status, 'parcialmente_reembolsado')
        self.pedido_repo_mock.salvar.assert_not_called()

    def test_valor_acima_do_reembolsavel(self):
        self.pedido_repo_mock.buscar_por_id.return_value = criar_pedido()
        with self.assertRaises(DadosInvalidosError):
            self.use_case.executar(10, self.cliente, valor='800')
        self.gateway_mock.criar_reembolso.assert_not_called()

    def test_pedido_de_outro_cliente(self):
        self.pedido_repo_mock.buscar_por_id.return_value = criar_pedido(usuario_id=2)
        with self.assertRaises(PermissaoNegadaError):
            self.use_case.executar(10, self.cliente)

    def test_admin_pode_reembolsar_qualquer_pedido(self):
        self.pedido_repo_mock.buscar_por_id.return_value = criar_pedido(usuario_id=2)
        pedido = self.use_case.executar(10, Usuario(id=99, is_admin=True))
        self.assertEqual(pedido.pagamento.status, 'reembolsado')

    def test_pagamento_nao_concluido(self):
        pedido = criar_pedido()
        pedido.pagamento.status = 'pendente'
        self.pedido_repo_mock.buscar_por_id.return_value = pedido
        with self.assertRaises(EstadoPedidoInvalidoError):
            self.use_case.executar(10, self.cliente)


# ====================================================================
# 5. PEDIDOS
# ====================================================================

class TestGerenciarPedidoClienteUseCase(unittest.TestCase):

    def setUp(self):
        self.pedido_repo_mock = Mock()
        self.pedido_repo_mock.cancelar.side_effect = aplicar_sob_trava(self.pedido_repo_mock)
        self.pedido_repo_mock.atualizar_com_trava.side_effect = aplicar_sob_trava(self.pedido_repo_mock)
        self.use_case = GerenciarPedidoClienteUseCase(self.pedido_repo_mock)
        self.cliente = Usuario(id=1)

    def test_cancelar_pedido_confirmado(self):
        self.pedido_repo_mock.buscar_por_id.return_value = criar_pedido()

        pedido = self.use_case.cancelar(10, self.cliente, 'Desisti')

        self.assertEqual(pedido.status, 'cancelado')
        self.assertIsNotNone(pedido.cancelado_em)
        self.assertEqual(pedido.historico[-1].status, 'cancelado')
        self.pedido_repo_mock.cancelar.assert_called_once_with(10, ANY)

    def test_nao_cancela_apos_envio(self):
        for status in ('enviado', 'entregue', 'cancelado'):
            self.pedido_repo_mock.buscar_por_id.return_value = criar_pedido(status=status)
            with self.assertRaises(EstadoPedidoInvalidoError):
                self.use_case.cancelar(10, self.cliente)
        self.pedido_repo_mock.cancelar.assert_not_called()

    def test_cancelamento_reconfere_o_estado_gravado(self):
        """
        Cenário: A leitura inicial diz 'confirmado', mas o pedido já foi enviado quando a linha é travada.
        """
        self.pedido_repo_mock.buscar_por_id.return_value = criar_pedido()
        enviado = criar_pedido(status='enviado')
        self.pedido_repo_mock.cancelar.side_effect = lambda pedido_id, alteracao: alteracao(enviado)

        with self.assertRaises(EstadoPedidoInvalidoError):
            self.use_case.cancelar(10, self.cliente)

        self.assertEqual(enviado.status, 'enviado')

    def test_admin_nao_cancela_pela_area_do_cliente(self):
        self.pedido_repo_mock.buscar_por_id.return_value = criar_pedido(usuario_id=2)
        with self.assertRaises(PermissaoNegadaError):
            self.use_case.cancelar(10, Usuario(id=99, is_admin=True))

    def test_detalhar_pedido_de_outro_cliente(self):
        self.pedido_repo_mock.buscar_por_id.return_value = criar_pedido(usuario_id=2)
        with self.assertRaises(PermissaoNegadaError):
            self.use_case.detalhar(10, self.cliente)
        self.assertEqual(self.use_case.detalhar(10, Usuario(id=99, is_admin=True)).id, 10)

    def test_devolucao_dentro_da_janela(self):
        pedido = criar_pedido(status='entregue')
        pedido.entregue_em = agora() - timedelta(days=3)
        self.pedido_repo_mock.buscar_por_id.return_value = pedido

        pedido = self.use_case.solicitar_devolucao(10, self.cliente, 'Embalagem violada')

        self.assertEqual(pedido.status, 'devolucao_solicitada')
        self.assertEqual(pedido.motivo_devolucao, 'Embalagem violada')

    def test_devolucao_fora_da_janela(self):
        pedido = criar_pedido(status='entregue')
        pedido.entregue_em = agora() - timedelta(days=8)
        self.pedido_repo_mock.buscar_por_id.return_value = pedido
        with self.assertRaises(EstadoPedidoInvalidoError):
            self.use_case.solicitar_devolucao(10, self.cliente)

    def test_devolucao_de_pedido_nao_entregue(self):
        self.pedido_repo_mock.buscar_por_id.return_value = criar_pedido(status='enviado')
        with self.assertRaises(EstadoPedidoInvalidoError):
            self.use_case.solicitar_devolucao(10, self.cliente)


class TestGerenciarPedidosAdminUseCase(unittest.TestCase):

    def setUp(self):
        self.pedido_repo_mock = Mock()
        self.usuario_repo_mock = Mock()
        self.notificacao_mock = Mock()
        self.pedido_repo_mock.atualizar_com_trava.side_effect = aplicar_sob_trava(self.pedido_repo_mock)
        self.pedido_repo_mock.buscar_por_id.return_value = criar_pedido()
        self.use_case = GerenciarPedidosAdminUseCase(
            self.pedido_repo_mock, self.usuario_repo_mock, self.notificacao_mock)

    def test_status_enviado_notifica_cliente(self):
        pedido = self.use_case.atualizar_status(10, 'enviado', 'Saiu pelos Correios', admin_id=99)

        self.assertEqual(pedido.historico[-1].atualizado_por, 99)
        self.notificacao_mock.enviar_notificacao_envio.assert_called_once()

    def test_status_desconhecido(self):
        with self.assertRaises(EstadoPedidoInvalidoError):
            self.use_case.atualizar_status(10, 'perdido')

    def test_entregue_registra_data(self):
        pedido = self.use_case.atualizar_status(10, 'entregue')
        self.assertIsNotNone(pedido.entregue_em)

    def test_rastreamento_parcial(self):
        pedido = self.use_case.atualizar_rastreamento(10, {'transportadora': 'BlueDart', 'ignorado': 'x'})
        self.assertEqual(pedido.rastreamento.transportadora, 'BlueDart')
        self.assertEqual(pedido.rastreamento.codigo_rastreio, '')


# ====================================================================
# 6. AVALIAÇÕES E LISTA DE DESEJOS
# ====================================================================

class TestAvaliacoesUseCase(unittest.TestCase):

    def setUp(self):
        self.avaliacao_repo_mock = Mock()
        self.produto_repo_mock = Mock()
        self.pedido_repo_mock = Mock()
        self.avaliacao_repo_mock.salvar.side_effect = lambda a: a
        self.avaliacao_repo_mock.buscar_do_usuario.return_value = None
        self.produto_repo_mock.buscar_por_id.return_value = criar_produto()
        self.use_case = AvaliacoesUseCase(self.avaliacao_repo_mock, self.produto_repo_mock, self.pedido_repo_mock)

    def test_criar_marca_compra_verificada_e_atualiza_media(self):
        self.pedido_repo_mock.usuario_comprou_produto.return_value = True
        self.avaliacao_repo_mock.notas_aprovadas.return_value = [5, 4, 4]

        avaliacao = self.use_case.criar(1, 1, 5, 'Ótimo')

        self.assertTrue(avaliacao.compra_verificada)
        self.produto_repo_mock.atualizar_avaliacao.assert_called_once_with(1, Decimal('4.3'), 3)

    def test_nota_invalida(self):
        with self.assertRaises(DadosInvalidosError):
            self.use_case.criar(1, 1, 6)

    def test_avaliacao_duplicada(self):
        self.avaliacao_repo_mock.buscar_do_usuario.return_value = Mock()
        with self.assertRaises(DadosInvalidosError):
            self.use_case.criar(1, 1, 5)


class TestListaDesejosUseCase(unittest.TestCase):

    def setUp(self):
        self.lista_repo_mock = Mock()
        self.produto_repo_mock = Mock()
        self.carrinho_uc_mock = Mock()
        self.use_case = ListaDesejosUseCase(self.lista_repo_mock, self.produto_repo_mock, self.carrinho_uc_mock)

    def test_adicionar_produto_repetido(self):
        self.produto_repo_mock.buscar_por_id.return_value = criar_produto()
        self.lista_repo_mock.buscar_ou_criar.return_value = ListaDesejos(
            usuario_id=1, itens=[ItemListaDesejos(produto_id=1)])
        with self.assertRaises(DadosInvalidosError):
            self.use_case.adicionar(1, 1)

    def test_mover_para_carrinho_escolhe_variante_disponivel(self):
        self.lista_repo_mock.buscar_ou_criar.return_value = ListaDesejos(
            usuario_id=1, itens=[ItemListaDesejos(produto_id=1)])
        self.produto_repo_mock.buscar_por_id.return_value = criar_produto()

        self.use_case.mover_para_carrinho(1, 1)

        self.carrinho_uc_mock.adicionar_item.assert_called_once_with(1, 1, 11, 1)
        self.lista_repo_mock.remover.assert_called_once_with(1, 1)

    def test_mover_produto_fora_da_lista(self):
        self.lista_repo_mock.buscar_ou_criar.return_value = ListaDesejos(usuario_id=1)
        with self.assertRaises(ItemNaoEncontradoError):
            self.use_case.mover_para_carrinho(1, 1)


if __name__ == '__main__':
    unittest.main()
