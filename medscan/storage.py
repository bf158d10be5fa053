# medscan/storage.py
import json
import logging
import os
from collections import OrderedDict
from datetime import datetime, timedelta, tzinfo
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from medscan.config import DATA_FILE
from medscan.models import ChatSession, Contact, utcnow

logger = logging.getLogger(__name__)

SESSIONS_KEY = "medscan_chat_sessions"
ACTIVE_SESSION_KEY = "medscan_active_session_id"
CONTACTS_KEY = "medscan_contacts"
GUEST_PROFILE_KEY = "medscan_guest_profile"
AUTH_PROFILE_KEY_PREFIX = "medscan_auth_profile_"


class JsonFileStore:
    """String-keyed store persisted as one JSON object on disk.

    Every write rewrites the whole file. A missing, unreadable or corrupted
    file reads as an empty store.
    """

    def __init__(self, path: str = DATA_FILE):
        self.path = path

    def _read(self) -> Dict[str, Any]:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("Could not read %s, treating it as empty: %s", self.path, e)
            return {}
        if not isinstance(data, dict):
            logger.warning("Unexpected content in %s, treating it as empty", self.path)
            return {}
        return data

    def _write(self, data: Dict[str, Any]) -> None:
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)

    def get(self, key: str, default: Any = None) -> Any:
        return self._read().get(key, default)

    def set(self, key: str, value: Any) -> None:
        self.update({key: value})

    def update(self, values: Dict[str, Any]) -> None:
        data = self._read()
        data.update(values)
        self._write(data)

    def remove(self, key: str) -> None:
        data = self._read()
        if key in data:
            del data[key]
            self._write(data)


class SessionStore:
    def __init__(self, store: JsonFileStore):
        self.store = store

    def create_session(self) -> ChatSession:
        now = utcnow()
        # not persisted until the first save
        return ChatSession(startTime=now, lastUpdated=now)

    def _load(self) -> List[ChatSession]:
        raw = self.store.get(SESSIONS_KEY)
        if not raw:
            return []
        try:
            return [ChatSession.model_validate(item) for item in raw]
        except (ValidationError, TypeError) as e:
            logger.warning("Failed to load sessions, starting empty: %s", e)
            return []

    def _dump(self, sessions: List[ChatSession]) -> List[Dict[str, Any]]:
        return [s.model_dump(mode="json") for s in sessions]

    def list_sessions(self) -> List[ChatSession]:
        return sorted(self._load(), key=lambda s: s.lastUpdated, reverse=True)

    def get_session(self, session_id: str) -> Optional[ChatSession]:
        for session in self._load():
            if session.id == session_id:
                return session
        return None

    def save_session(self, session: ChatSession) -> None:
        sessions = self._load()
        for i, existing in enumerate(sessions):
            if existing.id == session.id:
                sessions[i] = session
                break
        else:
            sessions.append(session)

        self.store.update(
            {
                SESSIONS_KEY: self._dump(sessions),
                ACTIVE_SESSION_KEY: session.id,
            }
        )

    def delete_session(self, session_id: str) -> bool:
        sessions = self._load()
        remaining = [s for s in sessions if s.id != session_id]
        self.store.set(SESSIONS_KEY, self._dump(remaining))

        if self.get_active_session_id() == session_id:
            self.store.remove(ACTIVE_SESSION_KEY)
        return len(remaining) != len(sessions)

    def get_active_session_id(self) -> Optional[str]:
        return self.store.get(ACTIVE_SESSION_KEY)

    def get_last_active_or_new(self) -> ChatSession:
        active_id = self.get_active_session_id()
        if active_id:
            session = self.get_session(active_id)
            if session:
                return session

        sessions = self.list_sessions()
        if sessions:
            return sessions[0]
        return self.create_session()


def group_sessions_by_date(
    sessions: List[ChatSession],
    now: datetime | None = None,
    tz: tzinfo | None = None,
) -> "OrderedDict[str, List[ChatSession]]":
    """Bucket sessions by the calendar day of lastUpdated, as seen in tz (UTC by default)."""
    now = now or utcnow()
    if tz is not None:
        now = now.astimezone(tz)
    today = now.date()
    yesterday = today - timedelta(days=1)
    week_ago = today - timedelta(days=7)

    groups: "OrderedDict[str, List[ChatSession]]" = OrderedDict(
        (label, []) for label in ("Today", "Yesterday", "Previous 7 Days", "Older")
    )
    for session in sorted(sessions, key=lambda s: s.lastUpdated, reverse=True):
        day = session.lastUpdated.astimezone(now.tzinfo).date() if now.tzinfo else session.lastUpdated.date()
        if day >= today:
            groups["Today"].append(session)
        elif day == yesterday:
            groups["Yesterday"].append(session)
        elif day > week_ago:
            groups["Previous 7 Days"].append(session)
        else:
            groups["Older"].append(session)

    return OrderedDict((label, items) for label, items in groups.items() if items)


class ContactStore:
    def __init__(self, store: JsonFileStore):
        self.store = store

    def list_contacts(self) -> List[Contact]:
        raw = self.store.get(CONTACTS_KEY)
        if not raw:
            return []
        try:
            return [Contact.model_validate(item) for item in raw]
        except (ValidationError, TypeError) as e:
            logger.warning("Failed to parse contacts: %s", e)
            return []

    def get_contact(self, contact_id: str) -> Optional[Contact]:
        for contact in self.list_contacts():
            if contact.id == contact_id:
                return contact
        return None

    def save_contact(self, contact: Contact) -> Contact:
        contacts = self.list_contacts()
        for i, existing in enumerate(contacts):
            if existing.id == contact.id:
                contacts[i] = contact
                break
        else:
            contacts.append(contact)
        self.store.set(CONTACTS_KEY, [c.model_dump(mode="json") for c in contacts])
        return contact

    def delete_contact(self, contact_id: str) -> bool:
        contacts = self.list_contacts()
        remaining = [c for c in contacts if c.id != contact_id]
        self.store.set(CONTACTS_KEY, [c.model_dump(mode="json") for c in remaining])
        return len(remaining) != len(contacts)
