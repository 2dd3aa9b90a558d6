# Recalculate Tiers Management Command
from django.conf import settings
from django.core.management.base import BaseCommand, CommandError
from django.db import transaction
from django.db.models import Count, Q

from exchange.models import Transaction, User
from exchange.rewards import tier_for


class Command(BaseCommand):
    help = 'Recalculates reward tiers (and optionally points) for every user.'

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Run the command without saving changes to the database.',
        )
        parser.add_argument(
            '--rebuild-points',
            action='store_true',
            help='Recompute points from completed transactions before deriving tiers.',
        )
        parser.add_argument(
            '--batch-size',
            type=int,
            default=1000,
            help='Batch size for bulk processing.',
        )

    def handle(self, *args, **options):
        dry_run = options['dry_run']
        rebuild_points = options['rebuild_points']
        batch_size = options['batch_size']

        if batch_size < 1:
            raise CommandError('--batch-size must be a positive integer.')

        self.stdout.write('Recalculating user tiers...')

        users = User.objects.order_by('pk')
        if rebuild_points:
            completed = Transaction.STATUS_COMPLETED
            users = users.annotate(
                completed_donations=Count(
                    'donor_transactions',
                    filter=Q(donor_transactions__status=completed),
                    distinct=True,
                ),
                completed_requests=Count(
                    'receiver_transactions',
                    filter=Q(receiver_transactions__status=completed),
                    distinct=True,
                ),
            )

        updates = []
        count = 0
        changed = 0

        with transaction.atomic():
            for user in users.iterator(chunk_size=batch_size):
                new_points = user.points
                if rebuild_points:
                    new_points = (
                        user.completed_donations * settings.DONOR_COMPLETION_POINTS
                        + user.completed_requests * settings.RECEIVER_COMPLETION_POINTS
                    )
                new_tier = tier_for(new_points)

                if new_points != user.points or new_tier != user.tier:
                    if dry_run:
                        self.stdout.write(
                            f'  [DRY-RUN] User {user.id} ({user.email}): '
                            f'Points {user.points} -> {new_points}, Tier {user.tier} -> {new_tier}'
                        )
                    user.points = new_points
                    user.tier = new_tier
                    updates.append(user)
                    changed += 1

                if len(updates) >= batch_size:
                    if not dry_run:
                        User.objects.bulk_update(updates, ['points', 'tier'])
                    updates = []

                count += 1
                if count % 100 == 0:
                    self.stdout.write(f'Processed {count} users...')

            if updates and not dry_run:
                User.objects.bulk_update(updates, ['points', 'tier'])

        self.stdout.write(f'Processed {count} users total, {changed} changed.')

        if dry_run:
            self.stdout.write(self.style.SUCCESS('Dry run completed. No changes saved.'))
        else:
            self.stdout.write(self.style.SUCCESS('Recalculation completed successfully.'))
