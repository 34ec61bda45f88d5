"""
Management command to register the daily compliance resync with django-q.

Usage:
    python manage.py setup_compliance_sweep

Creates (or updates) a Schedule entry that runs
resync_all_compliance_schedules() once a day. Safe to run repeatedly.
"""
from django.core.management.base import BaseCommand
from django_q.models import Schedule


class Command(BaseCommand):
    help = "Register the daily compliance reminder resync task with django-q"

    def handle(self, *args, **options):
        schedule, created = Schedule.objects.update_or_create(
            name="compliance_resync",
            defaults={
                "func": "triage.services.compliance.resync_all_compliance_schedules",
                "schedule_type": Schedule.DAILY,
                "repeats": -1,
            },
        )
        verb = "Created" if created else "Updated"
        self.stdout.write(self.style.SUCCESS(
            f"{verb} periodic task: {schedule.name} (daily)"
        ))
