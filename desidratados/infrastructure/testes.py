from datetime import timedelta
from decimal import Decimal
from unittest.mock import Mock

from django.contrib.auth import get_user_model
from django.test import TestCase
from django.utils import timezone

from desidratados.catalogo.models import Categoria, Produto, Variante
from desidratados.carrinho.models import Carrinho as CarrinhoModel
from desidratados.cupons.models import Cupom as CupomModel, UsoCupom
from desidratados.pedidos.models import Pedido as PedidoModel, ConciliacaoPagamento
from desidratados.core.entities import (
    ItemCarrinho, CupomAplicado, PagamentoPedido, EnderecoEntrega, RegistroConciliacao, Produto as ProdutoEntity,
    Usuario as UsuarioEntity,
)
from desidratados.core.exceptions import (
    EstoqueInsuficienteError, ConflitoConcorrenciaError, CarrinhoInexistenteError, CupomInelegivelError,
    PagamentoDivergenteError, ItemNaoEncontradoError, EstadoPedidoInvalidoError, PedidoNaoEncontradoError,
)
from desidratados.core.use_cases import GerenciarPedidoClienteUseCase, ReembolsoUseCase
from desidratados.infrastructure.repositories import (
    ProdutoRepositoryDjango, CarrinhoRepositoryDjango, CupomRepositoryDjango, PedidoRepositoryDjango,
    ConciliacaoRepositoryDjango, ListaDesejosRepositoryDjango,
)


class BaseLojaTestCase(TestCase):
    """Catálogo mínimo: uma categoria, um produto e uma variante com 5 unidades."""

    def setUp(self):
        self.usuario = get_user_model().objects.create_user(email='cliente@example.com', password='senha123')
        self.categoria = Categoria.objects.create(nome='Frutas Desidratadas')
        self.produto = Produto.objects.create(
            categoria=self.categoria, nome='Manga Desidratada', descricao='Fatias de manga',
            preco_base=Decimal('299.00'),
        )
        self.variante = Variante.objects.create(
            produto=self.produto, tamanho='250g', peso=Decimal('250'), unidade_peso='g',
            preco=Decimal('299.00'), estoque=5,
        )
        self.produto_repo = ProdutoRepositoryDjango()
        self.carrinho_repo = CarrinhoRepositoryDjango()

    def criar_carrinho(self, quantidade=2, cupom=None, usuario=None):
        carrinho = self.carrinho_repo.buscar_ou_criar((usuario or self.usuario).pk)
        carrinho.itens.append(ItemCarrinho(
            produto_id=self.produto.pk, variante_id=self.variante.pk, quantidade=quantidade,
            preco_unitario=self.variante.preco, nome=self.produto.nome, tamanho=self.variante.tamanho,
        ))
        carrinho.cupom = cupom
        return self.carrinho_repo.salvar(carrinho)


# ====================================================================
# 1. CATÁLOGO E ESTOQUE
# ====================================================================

class ProdutoRepositoryTestCase(BaseLojaTestCase):

    def test_buscar_por_id_com_variantes(self):
        """
        Cenário: O produto volta como entidade, com as variantes carregadas.
        """
        produto = self.produto_repo.buscar_por_id(self.produto.pk)

        self.assertIsInstance(produto, ProdutoEntity)
        self.assertEqual(produto.slug, 'frutas-desidratadas-manga-desidratada')
        self.assertEqual(produto.estoque_total, 5)
        self.assertEqual(produto.buscar_variante(self.variante.pk).preco, Decimal('299.00'))

    def test_buscar_por_id_inexistente(self):
        self.assertIsNone(self.produto_repo.buscar_por_id(9999))

    def test_listar_filtra_inativos_e_busca(self):
        Produto.objects.create(categoria=self.categoria, nome='Kiwi', descricao='x',
                               preco_base=Decimal('10'), ativo=False)

        self.assertEqual([p.nome for p in self.produto_repo.listar()], ['Manga Desidratada'])
        self.assertEqual(self.produto_repo.listar(busca='kiwi'), [])

    def test_baixa_condicional_nunca_deixa_estoque_negativo(self):
        """
        Cenário: Duas baixas de 3 unidades sobre um estoque de 5. A segunda falha.
        """
        self.assertTrue(self.produto_repo.decrementar_estoque_variante(self.produto.pk, self.variante.pk, 3))
        self.assertFalse(self.produto_repo.decrementar_estoque_variante(self.produto.pk, self.variante.pk, 3))

        self.variante.refresh_from_db()
        self.produto.refresh_from_db()
        self.assertEqual(self.variante.estoque, 2)
        self.assertEqual(self.produto.vendidos, 3)

    def test_devolucao_de_estoque(self):
        self.produto_repo.decrementar_estoque_variante(self.produto.pk, self.variante.pk, 2)
        self.produto_repo.incrementar_estoque_variante(self.produto.pk, self.variante.pk, 2)

        self.variante.refresh_from_db()
        self.assertEqual(self.variante.estoque, 5)


# ====================================================================
# 2. CARRINHO
# ====================================================================

class CarrinhoRepositoryTestCase(BaseLojaTestCase):

    def test_salvar_recalcula_totais_e_incrementa_versao(self):
        carrinho = self.criar_carrinho()

        self.assertEqual(carrinho.total, Decimal('705.64'))
        self.assertEqual(carrinho.versao, 1)
        self.assertEqual(CarrinhoModel.objects.get(pk=carrinho.id).total, Decimal('705.64'))

    def test_cupom_gravado_como_copia(self):
        cupom = CupomAplicado(codigo='DESC10', valor=Decimal('10'), tipo='percentual')
        carrinho = self.criar_carrinho(cupom=cupom)

        recarregado = self.carrinho_repo.buscar_por_usuario(self.usuario.pk)
        self.assertEqual(recarregado.cupom.codigo, 'DESC10')
        self.assertEqual(carrinho.total, Decimal('635.08'))

    def test_um_carrinho_por_usuario(self):
        primeiro = self.carrinho_repo.buscar_ou_criar(self.usuario.pk)
        segundo = self.carrinho_repo.buscar_ou_criar(self.usuario.pk)
        self.assertEqual(primeiro.id, segundo.id)
        self.assertEqual(CarrinhoModel.objects.filter(usuario=self.usuario).count(), 1)

    def test_gravacao_com_versao_antiga_e_rejeitada(self):
        """
        Cenário: Duas requisições leem o mesmo carrinho; a segunda a gravar recebe conflito.
        """
        self.criar_carrinho(quantidade=1)
        leitura_a = self.carrinho_repo.buscar_por_usuario(self.usuario.pk)
        leitura_b = self.carrinho_repo.buscar_por_usuario(self.usuario.pk)

        leitura_a.itens[0].quantidade = 2
        self.carrinho_repo.salvar(leitura_a)

        leitura_b.itens[0].quantidade = 3
        with self.assertRaises(ConflitoConcorrenciaError):
            self.carrinho_repo.salvar(leitura_b)
        self.assertEqual(self.carrinho_repo.buscar_por_usuario(self.usuario.pk).itens[0].quantidade, 2)

    def test_salvar_carrinho_removido(self):
        carrinho = self.criar_carrinho()
        self.carrinho_repo.deletar(carrinho.id)
        with self.assertRaises(CarrinhoInexistenteError):
            self.carrinho_repo.salvar(carrinho)

    def test_carrinho_expirado_e_removido_ao_ser_lido(self):
        carrinho = self.criar_carrinho()
        CarrinhoModel.objects.filter(pk=carrinho.id).update(expira_em=timezone.now() - timedelta(minutes=1))

        self.assertIsNone(self.carrinho_repo.buscar_por_usuario(self.usuario.pk))
        self.assertFalse(CarrinhoModel.objects.filter(pk=carrinho.id).exists())

    def test_salvar_renova_expiracao(self):
        carrinho = self.criar_carrinho()
        CarrinhoModel.objects.filter(pk=carrinho.id).update(expira_em=timezone.now() + timedelta(hours=1))

        self.carrinho_repo.salvar(self.carrinho_repo.buscar_por_id(carrinho.id))

        expira_em = CarrinhoModel.objects.get(pk=carrinho.id).expira_em
        self.assertGreater(expira_em, timezone.now() + timedelta(days=6))

    def test_remover_expirados(self):
        carrinho = self.criar_carrinho()
        CarrinhoModel.objects.filter(pk=carrinho.id).update(expira_em=timezone.now() - timedelta(days=1))

        self.assertEqual(self.carrinho_repo.remover_expirados(timezone.now()), 1)
        self.assertEqual(CarrinhoModel.objects.count(), 0)


# ====================================================================
# 3. CONVERSÃO CARRINHO -> PEDIDO
# ====================================================================

class PedidoRepositoryTestCase(BaseLojaTestCase):

    def setUp(self):
        super().setUp()
        self.pedido_repo = PedidoRepositoryDjango(self.produto_repo)
        self.endereco = EnderecoEntrega(nome='Asha', rua='MG Road 10', cidade='Pune', cep='411001')

    def pagamento(self, pagamento_id='pay_1'):
        return PagamentoPedido(status='concluido', gateway_pedido_id='order_1',
                               gateway_pagamento_id=pagamento_id, gateway_assinatura='assinatura',
                               pago_em=timezone.now())

    def converter(self, carrinho, pagamento_id='pay_1'):
        return self.pedido_repo.converter_carrinho(
            carrinho_id=carrinho.id, pagamento=self.pagamento(pagamento_id), endereco=self.endereco,
            tipo_entrega='entrega_domicilio', total_esperado=carrinho.total, prefixo='DF',
        )

    def criar_cupom(self, **kwargs):
        dados = dict(codigo='UNICO', tipo_desconto='percentual', valor_desconto=Decimal('10'),
                     data_inicio=timezone.now() - timedelta(days=1), data_fim=timezone.now() + timedelta(days=1))
        dados.update(kwargs)
        return CupomModel.objects.create(**dados)

    def test_converter_carrinho_com_sucesso(self):
        """
        Cenário: Pedido criado, estoque baixado e carrinho apagado na mesma transação.
        """
        # ARRANGE
        carrinho = self.criar_carrinho()

        # ACT
        pedido = self.converter(carrinho)

        # ASSERT
        self.assertTrue(pedido.numero_pedido.startswith('DF'))
        self.assertEqual(pedido.status, 'confirmado')
        self.assertEqual(pedido.total, Decimal('705.64'))
        self.assertEqual(pedido.pagamento.status, 'concluido')
        self.assertEqual(pedido.endereco_entrega.cidade, 'Pune')
        self.assertEqual([h.status for h in pedido.historico], ['confirmado'])
        self.assertEqual(pedido.itens[0].total, Decimal('598.00'))

        self.variante.refresh_from_db()
        self.assertEqual(self.variante.estoque, 3)
        self.assertFalse(CarrinhoModel.objects.filter(pk=carrinho.id).exists())

    def test_estoque_insuficiente_desfaz_tudo(self):
        """
        Cenário: O estoque acabou entre o pagamento e a conversão. Nada é gravado.
        """
        carrinho = self.criar_carrinho(quantidade=2)
        Variante.objects.filter(pk=self.variante.pk).update(estoque=1)

        with self.assertRaises(EstoqueInsuficienteError) as ctx:
            self.converter(carrinho)

        self.assertEqual(ctx.exception.disponivel, 1)
        self.assertEqual(PedidoModel.objects.count(), 0)
        self.assertTrue(CarrinhoModel.objects.filter(pk=carrinho.id).exists())
        self.variante.refresh_from_db()
        self.assertEqual(self.variante.estoque, 1)

    def test_total_divergente(self):
        carrinho = self.criar_carrinho()
        with self.assertRaises(PagamentoDivergenteError):
            self.pedido_repo.converter_carrinho(
                carrinho_id=carrinho.id, pagamento=self.pagamento(), endereco=None,
                tipo_entrega='retirada_loja', total_esperado=Decimal('1.00'), prefixo='DF',
            )
        self.assertEqual(PedidoModel.objects.count(), 0)

    def test_carrinho_ja_convertido(self):
        carrinho = self.criar_carrinho()
        self.converter(carrinho)
        with self.assertRaises(CarrinhoInexistenteError):
            self.converter(carrinho, pagamento_id='pay_2')

    def test_registra_uso_do_cupom(self):
        cupom = self.criar_cupom()
        carrinho = self.criar_carrinho(cupom=CupomAplicado(codigo='UNICO', valor=Decimal('10'), tipo='percentual'))

        pedido = self.converter(carrinho)

        self.assertEqual(pedido.total, Decimal('635.08'))
        self.assertEqual(pedido.cupom.codigo, 'UNICO')
        self.assertEqual(UsoCupom.objects.filter(cupom=cupom, pedido_id=pedido.id).count(), 1)

    def test_cupom_de_uso_unico_ja_resgatado(self):
        """
        Cenário: Cupom com limite_uso=1 já usado por outro cliente. A conversão é desfeita.
        """
        cupom = self.criar_cupom(limite_uso=1)
        outro = get_user_model().objects.create_user(email='outro@example.com', password='senha123')
        UsoCupom.objects.create(cupom=cupom, usuario=outro)
        carrinho = self.criar_carrinho(cupom=CupomAplicado(codigo='UNICO', valor=Decimal('10'), tipo='percentual'))

        with self.assertRaises(CupomInelegivelError):
            self.converter(carrinho)

        self.assertEqual(PedidoModel.objects.count(), 0)
        self.variante.refresh_from_db()
        self.assertEqual(self.variante.estoque, 5)

    def test_ultima_unidade_disputada_por_dois_carrinhos(self):
        """
        Cenário: Dois clientes pagaram pela última unidade. Só um pedido é confirmado e o estoque fica em zero.
        """
        # ARRANGE
        Variante.objects.filter(pk=self.variante.pk).update(estoque=1)
        outro = get_user_model().objects.create_user(email='outro@example.com', password='senha123')
        primeiro = self.criar_carrinho(quantidade=1)
        segundo = self.criar_carrinho(quantidade=1, usuario=outro)

        # ACT
        pedido = self.converter(primeiro)
        with self.assertRaises(EstoqueInsuficienteError) as ctx:
            self.converter(segundo, pagamento_id='pay_2')

        # ASSERT
        self.assertEqual(pedido.status, 'confirmado')
        self.assertEqual(ctx.exception.disponivel, 0)
        self.assertEqual(PedidoModel.objects.count(), 1)
        self.variante.refresh_from_db()
        self.assertEqual(self.variante.estoque, 0)
        self.assertTrue(CarrinhoModel.objects.filter(pk=segundo.id).exists())

    def test_cupom_de_uso_unico_disputado_por_dois_carrinhos(self):
        """
        Cenário: Dois carrinhos com o mesmo cupom limite_uso=1. Só o primeiro resgate é aceito.
        """
        # ARRANGE
        cupom = self.criar_cupom(limite_uso=1)
        aplicado = CupomAplicado(codigo='UNICO', valor=Decimal('10'), tipo='percentual')
        outro = get_user_model().objects.create_user(email='outro@example.com', password='senha123')
        primeiro = self.criar_carrinho(cupom=aplicado)
        segundo = self.criar_carrinho(cupom=aplicado, usuario=outro)

        # ACT
        pedido = self.converter(primeiro)
        with self.assertRaises(CupomInelegivelError):
            self.converter(segundo, pagamento_id='pay_2')

        # ASSERT
        self.assertEqual(pedido.total, Decimal('635.08'))
        self.assertEqual(UsoCupom.objects.filter(cupom=cupom).count(), 1)
        self.assertEqual(PedidoModel.objects.count(), 1)
        self.variante.refresh_from_db()
        self.assertEqual(self.variante.estoque, 3)

    def test_pedido_nao_muda_com_o_catalogo(self):
        pedido = self.converter(self.criar_carrinho())
        Variante.objects.filter(pk=self.variante.pk).update(preco=Decimal('999.00'))
        Produto.objects.filter(pk=self.produto.pk).update(nome='Manga Premium')

        recarregado = self.pedido_repo.buscar_por_id(pedido.id)

        self.assertEqual(recarregado.itens[0].preco, Decimal('299.00'))
        self.assertEqual(recarregado.itens[0].nome, 'Manga Desidratada')
        self.assertEqual(recarregado.total, Decimal('705.64'))

    def test_salvar_nao_reescreve_totais(self):
        pedido = self.converter(self.criar_carrinho())
        pedido.total = Decimal('1.00')
        pedido.registrar_status('processando', 'Separando')

        salvo = self.pedido_repo.salvar(pedido)

        self.assertEqual(salvo.total, Decimal('705.64'))
        self.assertEqual(salvo.status, 'processando')
        self.assertEqual([h.status for h in salvo.historico], ['confirmado', 'processando'])

    def test_cancelar_devolve_estoque(self):
        pedido = self.converter(self.criar_carrinho())

        cancelado = self.pedido_repo.cancelar(
            pedido.id, lambda atual: atual.registrar_status('cancelado', 'Desisti', self.usuario.pk))

        self.variante.refresh_from_db()
        self.produto.refresh_from_db()
        self.assertEqual(cancelado.status, 'cancelado')
        self.assertIsNotNone(cancelado.cancelado_em)
        self.assertEqual(self.variante.estoque, 5)
        self.assertEqual(self.produto.vendidos, 0)

    def test_cancelamentos_sobrepostos_devolvem_estoque_uma_vez(self):
        """
        Cenário: Duas requisições leram o pedido 'confirmado' antes de qualquer cancelamento.
        Só a primeira cancela; a segunda relê a linha travada e recebe EstadoPedidoInvalidoError.
        """
        # ARRANGE
        pedido = self.converter(self.criar_carrinho())
        repo_defasado = Mock(wraps=self.pedido_repo)
        repo_defasado.buscar_por_id.return_value = self.pedido_repo.buscar_por_id(pedido.id)
        use_case = GerenciarPedidoClienteUseCase(repo_defasado)
        cliente = UsuarioEntity(id=self.usuario.pk)

        # ACT
        use_case.cancelar(pedido.id, cliente, 'Desisti')
        with self.assertRaises(EstadoPedidoInvalidoError):
            use_case.cancelar(pedido.id, cliente, 'Desisti de novo')

        # ASSERT
        self.variante.refresh_from_db()
        self.assertEqual(self.variante.estoque, 5)
        self.assertEqual(PedidoModel.objects.get(pk=pedido.id).status, 'cancelado')

    def test_cancelamento_apos_envio_pelo_admin_nao_devolve_estoque(self):
        pedido = self.converter(self.criar_carrinho())
        repo_defasado = Mock(wraps=self.pedido_repo)
        repo_defasado.buscar_por_id.return_value = self.pedido_repo.buscar_por_id(pedido.id)
        self.pedido_repo.atualizar_com_trava(pedido.id, lambda atual: atual.registrar_status('enviado'))

        with self.assertRaises(EstadoPedidoInvalidoError):
            GerenciarPedidoClienteUseCase(repo_defasado).cancelar(pedido.id, UsuarioEntity(id=self.usuario.pk))

        self.variante.refresh_from_db()
        self.assertEqual(self.variante.estoque, 3)
        self.assertEqual(PedidoModel.objects.get(pk=pedido.id).status, 'enviado')

    def test_reembolsos_sobrepostos_acumulam(self):
        """
        Cenário: Dois reembolsos de 100 partem da mesma leitura do pedido. O valor gravado soma os dois.
        """
        # ARRANGE
        pedido = self.converter(self.criar_carrinho())
        repo_defasado = Mock(wraps=self.pedido_repo)
        repo_defasado.buscar_por_id.return_value = self.pedido_repo.buscar_por_id(pedido.id)
        gateway = Mock()
        gateway.criar_reembolso.side_effect = [{'id': 'rfnd_1'}, {'id': 'rfnd_2'}]
        use_case = ReembolsoUseCase(repo_defasado, gateway)
        cliente = UsuarioEntity(id=self.usuario.pk)

        # ACT
        use_case.executar(pedido.id, cliente, valor='100.00')
        final = use_case.executar(pedido.id, cliente, valor='100.00')

        # ASSERT
        self.assertEqual(gateway.criar_reembolso.call_count, 2)
        self.assertEqual(final.pagamento.valor_reembolsado, Decimal('200.00'))
        self.assertEqual(final.pagamento.status, 'parcialmente_reembolsado')
        self.assertEqual(PedidoModel.objects.get(pk=pedido.id).valor_reembolsado, Decimal('200.00'))

    def test_atualizar_pedido_inexistente(self):
        with self.assertRaises(PedidoNaoEncontradoError):
            self.pedido_repo.atualizar_com_trava(999, lambda atual: None)

    def test_consultas_do_cliente(self):
        pedido = self.converter(self.criar_carrinho())

        self.assertEqual(self.pedido_repo.buscar_por_numero(pedido.numero_pedido).id, pedido.id)
        self.assertEqual(self.pedido_repo.buscar_por_pagamento_id('pay_1').id, pedido.id)
        self.assertEqual(self.pedido_repo.contar_pedidos_pagos(self.usuario.pk), 1)
        self.assertTrue(self.pedido_repo.usuario_comprou_produto(self.usuario.pk, self.produto.pk))
        self.assertEqual(len(self.pedido_repo.listar_por_usuario(self.usuario.pk, status='cancelado')), 0)


# ====================================================================
# 4. CONCILIAÇÃO, CUPONS E LISTA DE DESEJOS
# ====================================================================

class ConciliacaoRepositoryTestCase(BaseLojaTestCase):

    def setUp(self):
        super().setUp()
        self.repo = ConciliacaoRepositoryDjango()
        self.registro = RegistroConciliacao(
            gateway_pagamento_id='pay_1', gateway_pedido_id='order_1', carrinho_id=7, usuario_id=self.usuario.pk,
        )

    def test_registrar_captura_e_idempotente(self):
        self.repo.registrar_captura(self.registro)
        segundo = self.repo.registrar_captura(self.registro)

        self.assertEqual(ConciliacaoPagamento.objects.count(), 1)
        self.assertEqual(segundo.tentativas, 2)

    def test_ciclo_de_vida(self):
        self.repo.registrar_captura(self.registro)
        self.assertEqual(len(self.repo.listar_pendentes()), 1)

        self.repo.marcar_falha('pay_1', 'Estoque insuficiente')
        self.assertEqual(self.repo.listar_pendentes(), [])
        self.assertEqual(self.repo.listar_falhas()[0].motivo, 'Estoque insuficiente')

    def test_pendentes_respeita_idade(self):
        self.repo.registrar_captura(self.registro)
        self.assertEqual(self.repo.listar_pendentes(timezone.now() - timedelta(minutes=10)), [])


class CupomRepositoryTestCase(BaseLojaTestCase):

    def test_buscar_por_codigo_ignora_caixa(self):
        CupomModel.objects.create(
            codigo='verao20', tipo_desconto='fixo', valor_desconto=Decimal('20'),
            data_inicio=timezone.now(), data_fim=timezone.now() + timedelta(days=1),
        )
        repo = CupomRepositoryDjango()

        cupom = repo.buscar_por_codigo(' Verao20 ')

        self.assertEqual(cupom.codigo, 'VERAO20')
        self.assertTrue(repo.existe_codigo('verao20'))


class ListaDesejosRepositoryTestCase(BaseLojaTestCase):

    def test_adicionar_e_remover(self):
        repo = ListaDesejosRepositoryDjango()

        lista = repo.adicionar(self.usuario.pk, self.produto.pk)
        self.assertTrue(lista.contem(self.produto.pk))

        lista = repo.remover(self.usuario.pk, self.produto.pk)
        self.assertFalse(lista.contem(self.produto.pk))
        with self.assertRaises(ItemNaoEncontradoError):
            repo.remover(self.usuario.pk, self.produto.pk)
