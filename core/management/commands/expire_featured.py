"""
Management command that clears lapsed listing promotions.
"""

from django.core.management.base import BaseCommand
from django.db import transaction
from django.utils import timezone

from core.models import Listing


class Command(BaseCommand):
    help = 'Clears the featured flag on listings whose promotion has expired.'

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Report lapsed promotions without changing them.',
        )

    def handle(self, *args, **options):
        dry_run = options['dry_run']
        now = timezone.now()

        lapsed = Listing.objects.featured_lapsed(now)
        count = lapsed.count()

        if count == 0:
            self.stdout.write('No lapsed promotions.')
            return

        if options['verbosity'] > 1:
            for listing_id, title, expiry in lapsed.values_list('id', 'title', 'featured_expiry'):
                self.stdout.write(f'  {listing_id}: {title} (expired {expiry.isoformat()})')

        if dry_run:
            self.stdout.write(self.style.SUCCESS(f'Dry run: {count} promotion(s) would be cleared.'))
            return

        # queryset.update() skips Listing.save() and its full_clean()
        with transaction.atomic():
            updated = lapsed.update(is_featured=False, featured_expiry=None, updated_at=now)

        self.stdout.write(self.style.SUCCESS(f'Cleared {updated} lapsed promotion(s).'))
