# backend/hms_core/common/management/commands/ensure_roles.py

from django.contrib.auth.models import Group
from django.core.management.base import BaseCommand

from hms_core.accounts.models import UserProfile
from hms_core.common.permissions import ALL_ROLES, ROLE_PERMISSIONS


class Command(BaseCommand):
    help = (
        "Create one auth Group per role (idempotent). With --sync-profiles, also put every "
        "non-deleted user into exactly the group of their profile role."
    )

    def add_arguments(self, parser):
        parser.add_argument("--sync-profiles", action="store_true")

    def handle(self, *args, **options):
        groups = {}
        created = 0
        for name in ALL_ROLES:
            groups[name], was_created = Group.objects.get_or_create(name=name)
            created += 1 if was_created else 0
            self.stdout.write(f"  {name}: {len(ROLE_PERMISSIONS.get(name, ()))} permissions")

        self.stdout.write(self.style.SUCCESS(f"Roles ensured. Newly created: {created}"))

        if not options["sync_profiles"]:
            return

        role_groups = list(groups.values())
        fixed = 0
        for profile in UserProfile.objects.filter(is_deleted=False).select_related("user"):
            user = profile.user
            current = set(user.groups.filter(name__in=ALL_ROLES).values_list("name", flat=True))
            if current == {profile.role}:
                continue
            user.groups.remove(*role_groups)
            user.groups.add(groups[profile.role])
            fixed += 1

        self.stdout.write(self.style.SUCCESS(f"Profiles synced. Users fixed: {fixed}"))
