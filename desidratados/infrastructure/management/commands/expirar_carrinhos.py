import logging

from django.core.management.base import BaseCommand
from django.utils import timezone

from desidratados.core.dependency_injection import get_parametros_loja
from desidratados.infrastructure.repositories import CarrinhoRepositoryDjango

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = 'Remove os carrinhos cuja data de expiração já passou'

    def handle(self, *args, **kwargs):
        removidos = CarrinhoRepositoryDjango(get_parametros_loja()).remover_expirados(timezone.now())
        logger.info("%s carrinho(s) expirado(s) removido(s)", removidos)
        self.stdout.write(self.style.SUCCESS(f'{removidos} carrinho(s) expirado(s) removido(s).'))
