import json
from django.core.management.base import BaseCommand, CommandError
from django.core.serializers.json import DjangoJSONEncoder

from core.reconciliation import run_reconciliation


class Command(BaseCommand):
    help = "Compare every stored wallet balance with its ledger sum and record the result."

    def add_arguments(self, parser):
        parser.add_argument(
            "--json", action="store_true", help="Print the mismatch list as JSON."
        )

    def handle(self, *args, **options):
        run = run_reconciliation()

        if options["json"]:
            self.stdout.write(json.dumps(run.mismatches, indent=2, cls=DjangoJSONEncoder))

        if not run.ok:
            for m in run.mismatches:
                self.stderr.write(
                    f"user {m['user_id']}: stored={m['stored_balance']} ledger={m['ledger_balance']} diff={m['difference']}"
                )
            raise CommandError(f"Reconciliation run {run.pk}: {run.mismatch_count} balance mismatch(es).")

        self.stdout.write(self.style.SUCCESS(f"Reconciliation run {run.pk}: {run.users_checked} users, all balances match."))
