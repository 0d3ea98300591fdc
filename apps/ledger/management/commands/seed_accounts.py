from django.core.management.base import BaseCommand

from apps.ledger.services import cash_account, inventory_account


class Command(BaseCommand):
    help = "Create the system ledger accounts used by purchasing"

    def handle(self, *args, **options):
        for account in (cash_account(), inventory_account()):
            self.stdout.write(self.style.SUCCESS(f"{account.code}: {account.name}"))
