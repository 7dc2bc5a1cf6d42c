from rest_framework import mixins, serializers, viewsets
from rest_framework.exceptions import PermissionDenied

from .models import Agency
from .permissions import IsAgencyAdminOrReadOnly, get_user_agency


class AgencyScopedMixin:
    """
    Restringe o queryset à agência do usuário e grava a agência na criação.

    agency_field: caminho do campo até Agency (ex.: "agency", "proposal__agency").
    """

    agency_field = "agency"

    def get_agency(self):
        agency = get_user_agency(self.request.user)
        if agency is None:
            raise PermissionDenied("Usuário não pertence a nenhuma agência.")
        return agency

    def get_queryset(self):
        qs = super().get_queryset()
        return qs.filter(**{self.agency_field: self.get_agency()})

    def get_serializer_context(self):
        context = super().get_serializer_context()
        context["agency"] = get_user_agency(self.request.user)
        return context

    def perform_create(self, serializer):
        if self.agency_field == "agency":
            serializer.save(agency=self.get_agency())
        else:
            serializer.save()


class AgencySerializer(serializers.ModelSerializer):
    class Meta:
        model = Agency
        fields = ["id", "name", "slug", "closed_won_stage", "is_active", "created_at", "updated_at"]
        read_only_fields = ["id", "slug", "is_active", "created_at", "updated_at"]

    def validate_closed_won_stage(self, stage):
        if stage is None:
            return stage
        if stage.agency_id != self.instance.pk:
            raise serializers.ValidationError("Etapa não pertence a esta agência.")
        if not stage.is_closed:
            raise serializers.ValidationError("A etapa de venda fechada deve estar marcada como fechada.")
        return stage


class AgencyViewSet(
    mixins.RetrieveModelMixin,
    mixins.UpdateModelMixin,
    mixins.ListModelMixin,
    viewsets.GenericViewSet,
):
    """
    Dados da própria agência. Só administradores alteram.
    """

    queryset = Agency.objects.all()
    serializer_class = AgencySerializer
    permission_classes = [IsAgencyAdminOrReadOnly]

    def get_queryset(self):
        agency = get_user_agency(self.request.user)
        return super().get_queryset().filter(pk=agency.pk if agency else None)
