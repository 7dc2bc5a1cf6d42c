from django.core.management.base import BaseCommand, CommandError

from apps.agencies.models import Agency
from apps.crm.services import seed_default_pipeline


class Command(BaseCommand):
    help = "Cria/atualiza o funil padrão de propostas da agência"

    def add_arguments(self, parser):
        parser.add_argument("agency_slug", help="Slug da agência.")

    def handle(self, *args, **options):
        slug = options["agency_slug"]
        try:
            agency = Agency.objects.get(slug=slug)
        except Agency.DoesNotExist:
            raise CommandError(f"Agência '{slug}' não encontrada.")

        stages = seed_default_pipeline(agency)
        agency.refresh_from_db()
        for stage in stages:
            flags = []
            if stage.is_closed:
                flags.append("fechada")
            if stage.is_lost:
                flags.append("perdida")
            if stage.pk == agency.closed_won_stage_id:
                flags.append("venda fechada")
            suffix = f" ({', '.join(flags)})" if flags else ""
            self.stdout.write(f"{stage.order}. {stage.name}{suffix}")
        self.stdout.write(self.style.SUCCESS(f"Funil pronto: {len(stages)} etapas"))
