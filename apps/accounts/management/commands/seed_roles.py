from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group
from django.core.management.base import BaseCommand, CommandError

from apps.accounts.models import UserRole
from apps.common.permissions import ROLE_CAPABILITIES


class Command(BaseCommand):
    help = "Create one group per procurement role, optionally placing a user in one"

    def add_arguments(self, parser):
        parser.add_argument("--assign", nargs=2, metavar=("USERNAME", "ROLE"))

    def handle(self, *args, **options):
        for role in UserRole.values:
            group, created = Group.objects.get_or_create(name=role)
            capabilities = ", ".join(sorted(ROLE_CAPABILITIES.get(role, ())))
            state = "created" if created else "exists"
            self.stdout.write(self.style.SUCCESS(f"{group.name}: {state} [{capabilities}]"))

        if options["assign"]:
            username, role = options["assign"]
            role = role.upper()
            if role not in UserRole.values:
                raise CommandError(f"Unknown role {role}")
            user = get_user_model().objects.filter(username=username).first()
            if user is None:
                raise CommandError(f"User {username} not found")
            user.groups.set([Group.objects.get(name=role)])
            user.role = role
            user.save(update_fields=["role"])
            self.stdout.write(self.style.SUCCESS(f"{username} -> {role}"))
