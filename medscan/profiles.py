# medscan/profiles.py
import logging
import threading
from typing import Optional

from supabase import Client, create_client

from medscan.config import SUPABASE_ANON_KEY, SUPABASE_URL
from medscan.errors import ProfileError
from medscan.models import UserHealthProfile, utcnow
from medscan.storage import AUTH_PROFILE_KEY_PREFIX, GUEST_PROFILE_KEY, JsonFileStore

logger = logging.getLogger(__name__)

PROFILE_TABLE = "user_health_profile"

_supabase: Optional[Client] = None


def get_supabase_client() -> Optional[Client]:
    global _supabase
    if _supabase is None:
        if not SUPABASE_URL or not SUPABASE_ANON_KEY:
            logger.warning("SUPABASE_URL or SUPABASE_ANON_KEY not set; signed-in profiles are unavailable")
            return None
        _supabase = create_client(SUPABASE_URL, SUPABASE_ANON_KEY)
    return _supabase


class ProfileService:
    """Guest profiles live in the local store, signed-in ones in Supabase.

    Table calls run as the signed-in user so row-level security applies.
    A failed Supabase read or write falls back to a per-user local copy.
    """

    def __init__(self, store: JsonFileStore, supabase: Optional[Client] = None):
        self.store = store
        self.supabase = supabase
        # the postgrest session is shared; token swap and query must not interleave
        self._lock = threading.Lock()

    def resolve_user_id(self, access_token: str) -> str:
        if self.supabase is None:
            raise ProfileError("Authentication backend is not configured", status_code=503)
        try:
            response = self.supabase.auth.get_user(access_token)
        except Exception as e:
            logger.info("Rejected access token: %s", e)
            raise ProfileError("Invalid or expired session", status_code=401) from e

        user = response.user if response else None
        if user is None:
            raise ProfileError("No authenticated user found", status_code=401)
        return user.id

    def _local_key(self, user_id: Optional[str]) -> str:
        if user_id is None:
            return GUEST_PROFILE_KEY
        return f"{AUTH_PROFILE_KEY_PREFIX}{user_id}"

    def _load_local(self, user_id: Optional[str]) -> Optional[UserHealthProfile]:
        raw = self.store.get(self._local_key(user_id))
        if not raw:
            return None
        try:
            return UserHealthProfile.model_validate(raw)
        except Exception as e:
            logger.warning("Stored profile is unreadable: %s", e)
            return None

    def _run_as_user(self, access_token: Optional[str], query):
        with self._lock:
            if access_token:
                self.supabase.postgrest.auth(access_token)
            return query(self.supabase.table(PROFILE_TABLE)).execute()

    def save_profile(
        self,
        profile: UserHealthProfile,
        user_id: Optional[str] = None,
        access_token: Optional[str] = None,
    ) -> UserHealthProfile:
        stamped = profile.model_copy(
            update={"user_id": user_id, "updated_at": utcnow().isoformat()}
        )
        row = stamped.model_dump(mode="json")

        if user_id is None or self.supabase is None:
            self.store.set(self._local_key(user_id), row)
            return stamped

        try:
            self._run_as_user(
                access_token, lambda table: table.upsert(row, on_conflict="user_id")
            )
        except Exception as e:
            logger.warning("Supabase upsert failed, keeping a local copy: %s", e)
            self.store.set(self._local_key(user_id), row)
        return stamped

    def get_profile(
        self, user_id: Optional[str] = None, access_token: Optional[str] = None
    ) -> Optional[UserHealthProfile]:
        if user_id is None or self.supabase is None:
            return self._load_local(user_id)

        try:
            response = self._run_as_user(
                access_token,
                lambda table: table.select("*").eq("user_id", user_id).limit(1),
            )
            if response.data:
                return UserHealthProfile.model_validate(response.data[0])
        except Exception as e:
            logger.warning("Supabase profile fetch failed, using local copy: %s", e)

        return self._load_local(user_id)


def health_context_block(profile: Optional[UserHealthProfile]) -> str:
    if profile is None:
        return ""

    return (
        "--- USER HEALTH PROFILE CONTEXT ---\n"
        "Use this background info to personalize the response.\n"
        f"- Name: {profile.full_name or 'Not provided'}\n"
        f"- Age Group: {profile.age_group}\n"
        f"- Gender: {profile.gender}\n"
        f"- Known Conditions: {', '.join(profile.conditions) or 'None'}\n"
        f"- Allergies: {profile.allergies or 'None'}\n"
        f"- Current Medications: {profile.medications or 'None'}\n"
        f"- Preferred Language: {profile.preferred_language}\n\n"
        "SAFETY INSTRUCTIONS:\n"
        "1. Check for contraindications with known conditions/meds if suggesting treatments.\n"
        '2. If Age Group is "Under 12" or "60+", use simpler language and extra caution.\n'
        "3. If allergies are listed, explicitly warn against those substances if relevant.\n"
        "-----------------------------------"
    )
