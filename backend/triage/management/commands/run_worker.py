"""
Management command that runs the job worker.

Usage:
    python manage.py run_worker           # poll forever
    python manage.py run_worker --once    # single cycle (cron / smoke tests)

WORKER_ONCE=1 in the environment has the same effect as --once.
"""
from django.conf import settings
from django.core.management.base import BaseCommand

from triage.providers.sms_provider import get_sms_sender
from triage.services.job_executor import JobExecutor
from triage.services.job_worker import JobWorker


class Command(BaseCommand):
    help = "Claim and execute due jobs (follow-ups, compliance reminders, owner notifications)"

    def add_arguments(self, parser):
        parser.add_argument(
            "--once", action="store_true",
            help="Run a single cycle and exit",
        )
        parser.add_argument(
            "--worker-id", default=None,
            help="Lease owner name (defaults to WORKER_ID)",
        )

    def handle(self, *args, **options):
        worker = JobWorker(
            executor=JobExecutor(sender=get_sms_sender()),
            worker_id=options["worker_id"],
        )

        if options["once"] or settings.WORKER_ONCE:
            stats = worker.run_cycle()
            self.stdout.write(self.style.SUCCESS(f"Cycle complete: {stats}"))
            return

        self.stdout.write(f"Worker {worker.worker_id} started (Ctrl+C to stop)")
        try:
            worker.run_forever()
        except KeyboardInterrupt:
            self.stdout.write(self.style.WARNING(f"Worker {worker.worker_id} stopped"))
