from datetime import timedelta

from django.core.management.base import BaseCommand
from django.utils import timezone

from desidratados.core.dependency_injection import get_checkout_use_case, conciliacao_repo


class Command(BaseCommand):
    help = (
        'Reprocessa pagamentos capturados que não viraram pedido e lista os que '
        'falharam e precisam de reembolso ou ação manual'
    )

    def add_arguments(self, parser):
        parser.add_argument(
            '--minutos', type=int, default=10,
            help='Só reprocessa registros criados há pelo menos N minutos (padrão: 10).',
        )

    def handle(self, *args, **options):
        limite = timezone.now() - timedelta(minutes=options['minutos'])
        resumo = get_checkout_use_case().conciliar_pendentes(criado_antes_de=limite)

        self.stdout.write(self.style.SUCCESS(
            f"Convertidos: {resumo['convertidos']} | Já convertidos: {resumo['ja_convertidos']} "
            f"| Falhas: {resumo['falhas']}"
        ))

        falhas = conciliacao_repo.listar_falhas()
        for registro in falhas:
            self.stdout.write(self.style.WARNING(
                f"Pagamento {registro.gateway_pagamento_id} (usuário {registro.usuario_id}, "
                f"carrinho {registro.carrinho_id}) sem pedido: {registro.motivo}"
            ))
        if not falhas:
            self.stdout.write('Nenhum pagamento pendente de ação manual.')
