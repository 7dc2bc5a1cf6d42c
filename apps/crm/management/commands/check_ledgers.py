"""Report proposals whose ledgers disagree with their stage."""
from django.core.management.base import BaseCommand
from django.db.models import Exists, OuterRef

from apps.crm.models import Proposal
from apps.crm.transitions import retry_ledgers
from apps.finance.models import FinancialTransaction
from apps.team.models import CollaboratorCommission


class Command(BaseCommand):
    help = (
        "Lista propostas em etapa aberta que ainda têm comissão ou receita ativa. "
        "Com --fix, cancela as receitas e remove as comissões."
    )

    def add_arguments(self, parser):
        parser.add_argument(
            "--agency",
            default="",
            help="Verifica só a agência com este slug (opcional).",
        )
        parser.add_argument(
            "--fix",
            action="store_true",
            help="Aplica a correção. Sem esta flag, apenas lista.",
        )

    def handle(self, *args, **options):
        agency_slug = (options.get("agency") or "").strip()
        apply_fix = bool(options.get("fix"))

        active_income = FinancialTransaction.objects.filter(
            proposal=OuterRef("pk"),
            type=FinancialTransaction.TransactionType.INCOME,
        ).exclude(status=FinancialTransaction.Status.CANCELLED)
        commissions = CollaboratorCommission.objects.filter(proposal=OuterRef("pk"))

        qs = (
            Proposal.objects.filter(stage__is_closed=False)
            .filter(Exists(commissions) | Exists(active_income))
            .select_related("agency", "stage")
            .order_by("agency_id", "number")
        )
        if agency_slug:
            qs = qs.filter(agency__slug=agency_slug)

        proposals = list(qs)
        if not proposals:
            self.stdout.write(self.style.SUCCESS("Nenhuma inconsistência encontrada."))
            return

        fixed = 0
        for proposal in proposals:
            label = f"{proposal.agency.slug} #{proposal.number} ({proposal.stage.name})"
            if not apply_fix:
                self.stdout.write(f"[DRY-RUN] {label}: comissão/receita em etapa aberta")
                continue

            result = retry_ledgers(proposal)
            if result.partial:
                for failure in result.failures:
                    self.stderr.write(f"[FAIL] {label}: {failure}")
                continue
            fixed += 1
            self.stdout.write(
                self.style.SUCCESS(
                    f"[FIX] {label}: {result.cancelled_transactions} receita(s) cancelada(s), "
                    f"{result.deleted_commissions} comissão(ões) removida(s)"
                )
            )

        mode = "FIX" if apply_fix else "DRY-RUN"
        self.stdout.write("")
        self.stdout.write(f"[{mode}] inconsistentes: {len(proposals)}, corrigidas: {fixed}")
