from fastapi import APIRouter, Depends
from ..core.current_user import get_current_user
from ..core.roles import capabilities_for, capability_table
from ..models.user import User
from ..schemas.user import CapabilityTableOut, MeOut

router = APIRouter(tags=["me"])

@router.get("/me", response_model=MeOut)
def me(user: User = Depends(get_current_user)):
    return MeOut(
        id=user.id,
        name=user.name,
        email=user.email,
        role=user.role,
        company_id=user.company_id,
        capabilities=sorted(c.value for c in capabilities_for(user.role)),
    )

@router.get("/me/capabilities", response_model=list[str])
def my_capabilities(user: User = Depends(get_current_user)):
    return sorted(c.value for c in capabilities_for(user.role))

@router.get("/roles/capabilities", response_model=CapabilityTableOut)
def role_capabilities(user: User = Depends(get_current_user)):
    # Advisory only: every endpoint re-checks on its own.
    return CapabilityTableOut(roles=capability_table())
