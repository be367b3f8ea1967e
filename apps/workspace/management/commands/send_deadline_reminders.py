# apps/workspace/management/commands/send_deadline_reminders.py

from datetime import timedelta

from django.conf import settings
from django.core.management.base import BaseCommand, CommandError
from django.utils import timezone

from apps.core.mappers import map_task
from apps.core.models import TASKS
from apps.store.client import store
from apps.store.exceptions import StoreError
from apps.workspace.notifications import notification_service


class Command(BaseCommand):
    help = 'Notifies assignees of open tasks whose deadline is close'

    def add_arguments(self, parser):
        parser.add_argument(
            '--days',
            type=int,
            default=None,
            help='Window in days (defaults to ORBIT_DEADLINE_REMINDER_DAYS)'
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Only reports the reminders that would be sent'
        )

    def handle(self, *args, **options):
        """
        One deadline-reminder notification per assignee of each task due
        within the window (overdue tasks are left to the dashboard)
        """
        days = options['days'] if options['days'] is not None else settings.ORBIT_DEADLINE_REMINDER_DAYS
        dry_run = options['dry_run']

        now = timezone.now()
        limit = now + timedelta(days=days)

        try:
            tasks = [map_task(doc.id, doc.data) for doc in store.query(store.collection(TASKS))]
        except StoreError as e:
            raise CommandError(f'Could not read tasks: {e}')

        due = [
            task for task in tasks
            if task.status != 'completed' and task.deadline is not None and now <= task.deadline <= limit
        ]

        self.stdout.write(f'⏰ {len(due)} task(s) due in the next {days} day(s)')

        sent = failed = 0
        for task in due:
            due_label = f"on {task.deadline:%Y-%m-%d %H:%M}"
            for user_id in task.assigned_to:
                if dry_run:
                    self.stdout.write(f'  • would notify {user_id}: "{task.title}" due {due_label}')
                    continue
                try:
                    notification_service.deadline_reminder(
                        user_id, task.title, due_label, link=f'/workspace/projects/{task.project_id}/'
                    )
                    sent += 1
                except StoreError as e:
                    failed += 1
                    self.stdout.write(self.style.ERROR(f'  ❌ {user_id}: {e}'))

        if dry_run:
            self.stdout.write(self.style.WARNING('🧪 Dry run - nothing was written'))
            return

        self.stdout.write(self.style.SUCCESS(f'✅ {sent} reminder(s) sent, {failed} failed'))
