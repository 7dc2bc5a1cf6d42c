from django.contrib import admin
from django.urls import include, path
from rest_framework.routers import DefaultRouter

from apps.agencies.api import AgencyViewSet
from apps.crm.api import ClientViewSet, ProposalViewSet, StageViewSet
from apps.finance.api import FinanceSummaryView, FinancialTransactionViewSet
from apps.proposal_services.api import ProposalServiceViewSet
from apps.team.api import CollaboratorCommissionViewSet, CollaboratorViewSet

router = DefaultRouter()
router.register(r"agencies", AgencyViewSet, basename="agency")
router.register(r"stages", StageViewSet, basename="stage")
router.register(r"clients", ClientViewSet, basename="client")
router.register(r"proposals", ProposalViewSet, basename="proposal")
router.register(r"proposal-services", ProposalServiceViewSet, basename="proposalservice")
router.register(r"collaborators", CollaboratorViewSet, basename="collaborator")
router.register(r"commissions", CollaboratorCommissionViewSet, basename="commission")
router.register(
    r"financial-transactions",
    FinancialTransactionViewSet,
    basename="financialtransaction",
)

urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/v1/finance-summary/", FinanceSummaryView.as_view(), name="finance-summary"),
    path("api/v1/", include(router.urls)),
]
