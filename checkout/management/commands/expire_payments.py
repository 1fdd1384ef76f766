"""
Management command to expire gateway payments that were never completed.

Cancels the waiting orders, puts their stock back and releases their vouchers.
"""
import logging
import time

from django.core.management.base import BaseCommand

from checkout.services.payments import PaymentService

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = 'Expire unpaid gateway transactions and cancel their orders'

    def add_arguments(self, parser):
        parser.add_argument('--limit', type=int, default=100,
                            help='Transactions to expire per pass')
        parser.add_argument('--loop', action='store_true',
                            help='Keep running, one pass every --interval seconds')
        parser.add_argument('--interval', type=int, default=60,
                            help='Seconds between passes in --loop mode')

    def handle(self, *args, **options):
        service = PaymentService()

        if not options['loop']:
            self._expire(service, options['limit'], report_empty=True)
            return

        self.stdout.write(f"Expiring payments every {options['interval']}s, Ctrl+C to stop")
        try:
            while True:
                self._expire(service, options['limit'])
                time.sleep(options['interval'])
        except KeyboardInterrupt:
            self.stdout.write(self.style.WARNING('Stopped by user'))

    def _expire(self, service, limit, report_empty=False):
        expired = service.expire_stale_transactions(limit=limit)
        if expired or report_empty:
            self.stdout.write(self.style.SUCCESS(f'Expired {expired} payments'))
        if expired:
            logger.info("payments_expired", extra={"count": expired})
        return expired
