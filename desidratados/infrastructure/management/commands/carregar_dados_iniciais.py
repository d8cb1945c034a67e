from datetime import timedelta
from decimal import Decimal

from django.core.management.base import BaseCommand
from django.utils import timezone

from desidratados.catalogo.models import Categoria, Produto, Variante
from desidratados.cupons.models import Cupom


class Command(BaseCommand):
    help = 'Carrega categorias, produtos com variantes e um cupom de boas-vindas para teste da loja'

    CATEGORIAS = [
        ('Frutas Desidratadas', 'Frutas secas sem adição de açúcar', 1),
        ('Legumes Desidratados', 'Legumes crocantes para lanches e receitas', 2),
        ('Misturas', 'Combinações de frutas, legumes e sementes', 3),
    ]

    # (categoria, nome, descrição, [(tamanho, peso, unidade, preço, estoque)])
    PRODUTOS = [
        ('Frutas Desidratadas', 'Manga Desidratada', 'Fatias de manga Alphonso desidratadas lentamente.', [
            ('100g', Decimal('100'), 'g', Decimal('149.00'), 50),
            ('250g', Decimal('250'), 'g', Decimal('299.00'), 30),
        ]),
        ('Frutas Desidratadas', 'Chips de Banana', 'Banana kerala em rodelas finas.', [
            ('150g', Decimal('150'), 'g', Decimal('129.00'), 40),
        ]),
        ('Legumes Desidratados', 'Chips de Beterraba', 'Beterraba crocante com sal rosa.', [
            ('100g', Decimal('100'), 'g', Decimal('179.00'), 25),
            ('500g', Decimal('500'), 'g', Decimal('749.00'), 10),
        ]),
        ('Misturas', 'Mix Tropical', 'Manga, abacaxi, coco e castanhas.', [
            ('200g', Decimal('200'), 'g', Decimal('349.00'), 20),
            ('1kg', Decimal('1'), 'kg', Decimal('1499.00'), 5),
        ]),
    ]

    def handle(self, *args, **kwargs):
        self.stdout.write('Criando dados iniciais...')

        categorias = {}
        for nome, descricao, ordem in self.CATEGORIAS:
            categoria, created = Categoria.objects.get_or_create(
                nome=nome, defaults={'descricao': descricao, 'ordem': ordem}
            )
            categorias[nome] = categoria
            if created:
                self.stdout.write(self.style.SUCCESS(f'Criada categoria "{categoria.nome}"'))

        for cat_nome, nome, descricao, variantes in self.PRODUTOS:
            produto, created = Produto.objects.get_or_create(
                nome=nome,
                categoria=categorias[cat_nome],
                defaults={
                    'descricao': descricao,
                    'descricao_curta': descricao[:200],
                    'preco_base': variantes[0][3],
                },
            )
            if not created:
                continue
            for tamanho, peso, unidade, preco, estoque in variantes:
                Variante.objects.create(
                    produto=produto, tamanho=tamanho, peso=peso, unidade_peso=unidade,
                    preco=preco, estoque=estoque, sku=f"{produto.slug}-{tamanho}".upper(),
                )
            self.stdout.write(self.style.SUCCESS(f'Criado produto "{produto.nome}" com {len(variantes)} variante(s)'))

        agora = timezone.now()
        cupom, created = Cupom.objects.get_or_create(
            codigo='BEMVINDO10',
            defaults={
                'descricao': '10% de desconto na primeira compra',
                'tipo_desconto': 'percentual',
                'valor_desconto': Decimal('10'),
                'desconto_maximo': Decimal('200'),
                'apenas_primeiro_pedido': True,
                'data_inicio': agora,
                'data_fim': agora + timedelta(days=365),
            },
        )
        if created:
            self.stdout.write(self.style.SUCCESS(f'Criado cupom "{cupom.codigo}"'))

        self.stdout.write(self.style.SUCCESS('Dados iniciais carregados com sucesso!'))
