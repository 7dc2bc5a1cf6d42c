from typing import Iterable, List, Optional, Set

from rest_framework.permissions import SAFE_METHODS, BasePermission

from .models import Agency, AgencyMember


def get_membership(user) -> Optional[AgencyMember]:
    if not user or not user.is_authenticated:
        return None
    try:
        membership: AgencyMember = user.agency_membership  # type: ignore[attr-defined]
    except AgencyMember.DoesNotExist:
        return None
    if not membership.is_active:
        return None
    return membership


def get_user_agency(user) -> Optional[Agency]:
    """
    Agência do usuário ou None, se ele não pertence a nenhuma (ou o vínculo está inativo).
    """
    membership = get_membership(user)
    return membership.agency if membership is not None else None


def get_user_roles(user) -> Set[str]:
    """
    Papéis do usuário na agência. Superusuário recebe todos os papéis.
    """
    if not user or not user.is_authenticated:
        return set()
    if user.is_superuser:
        return {choice.value for choice in AgencyMember.Role}

    membership = get_membership(user)
    if membership is None:
        return set()
    return {membership.role}


class IsAgencyMember(BasePermission):
    """
    Acesso apenas para usuários vinculados a uma agência ativa.
    """

    message = "Usuário não pertence a nenhuma agência."

    def has_permission(self, request, view) -> bool:
        return get_user_agency(request.user) is not None


class BaseRolePermission(IsAgencyMember):
    """
    Checa se o usuário tem algum dos papéis em allowed_roles.

    Leitura (GET/HEAD/OPTIONS) é liberada para qualquer membro quando
    read_for_all_members = True.
    """

    allowed_roles: Iterable[str] = ()
    read_for_all_members: bool = False

    def has_permission(self, request, view) -> bool:
        if not super().has_permission(request, view):
            return False
        if self.read_for_all_members and request.method in SAFE_METHODS:
            return True
        return bool(set(self.allowed_roles) & get_user_roles(request.user))


class IsAgencyAdminOrReadOnly(BaseRolePermission):
    """
    Configuração do funil: só administradores alteram, todos os membros leem.
    """

    allowed_roles: List[str] = [AgencyMember.Role.ADMIN]
    read_for_all_members = True


class IsFinanceRole(BaseRolePermission):
    """
    Lançamentos financeiros: administradores e financeiro.
    """

    allowed_roles: List[str] = [AgencyMember.Role.ADMIN, AgencyMember.Role.FINANCE]
