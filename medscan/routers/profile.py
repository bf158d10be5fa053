# medscan/routers/profile.py
from typing import Optional

from fastapi import APIRouter, Depends

from medscan.deps import get_access_token, get_profile_service, get_user_id
from medscan.models import UserHealthProfile
from medscan.profiles import ProfileService

router = APIRouter(prefix="/profile", tags=["profile"])


@router.get("")
def get_profile(
    user_id: Optional[str] = Depends(get_user_id),
    token: Optional[str] = Depends(get_access_token),
    profiles: ProfileService = Depends(get_profile_service),
):
    profile = profiles.get_profile(user_id, token)
    return {
        "isGuest": user_id is None,
        "profile": profile.model_dump(mode="json") if profile else None,
    }


@router.put("", response_model=UserHealthProfile)
def save_profile(
    profile: UserHealthProfile,
    user_id: Optional[str] = Depends(get_user_id),
    token: Optional[str] = Depends(get_access_token),
    profiles: ProfileService = Depends(get_profile_service),
):
    return profiles.save_profile(profile, user_id, token)
