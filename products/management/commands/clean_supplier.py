from django.core.management.base import BaseCommand, CommandError

from products.cleanup import CleanupError, CleanupRequest, run_cleanup


class ConsoleReporter:
    """Writes cleanup progress to the command's stdout/stderr."""

    def __init__(self, command):
        self.stdout = command.stdout
        self.stderr = command.stderr
        self.style = command.style

    def info(self, text):
        self.stdout.write(self.style.SUCCESS(text))

    def warning(self, text):
        self.stdout.write(self.style.WARNING(text))

    def error(self, text):
        self.stderr.write(self.style.ERROR(text))


class Command(BaseCommand):
    help = (
        "Clean up products of a supplier not imported since a given date. "
        "Example: manage.py clean_supplier Acme disable 2024-01-31 --dry-run"
    )

    def add_arguments(self, parser):
        parser.add_argument('supplier_name', nargs='?', help="The name of the supplier to clean.")
        parser.add_argument('method', nargs='?', help="disable, storeview, delete")
        parser.add_argument('date', nargs='?', help="Only products last imported before this date (YYYY-MM-DD, default: today)")
        parser.add_argument('--dry-run', action='store_true', help="Run the process without making changes")
        parser.add_argument(
            '--stop-on-error',
            action='store_true',
            default=None,
            help="Stop at the first product that fails instead of continuing with the rest",
        )
        parser.add_argument(
            '--ignore-errors',
            action='store_true',
            help="Exit with success even when some products could not be cleaned",
        )

    def handle(self, *args, **options):
        try:
            request = CleanupRequest.build(
                options.get('supplier_name'),
                options.get('method'),
                options.get('date'),
                dry_run=options['dry_run'],
                stop_on_error=options.get('stop_on_error'),
            )
            report = run_cleanup(request, reporter=ConsoleReporter(self))
        except CleanupError as exc:
            raise CommandError(str(exc)) from exc

        if not report.ok and not options['ignore_errors']:
            raise CommandError(
                "%d of %d products could not be cleaned." % (len(report.failures), report.found),
                returncode=2,
            )
