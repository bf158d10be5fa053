# medscan/family.py
import re
from typing import Dict, List
from urllib.parse import quote

from medscan import ai
from medscan.models import Contact

_PHONE_RE = re.compile(r"[^0-9+]")


def clean_phone(phone: str) -> str:
    return _PHONE_RE.sub("", phone)


def build_contact_links(contact: Contact, message: str) -> Dict[str, str]:
    encoded = quote(message, safe="")
    phone = clean_phone(contact.phone)
    return {
        "whatsapp": f"https://wa.me/{phone}?text={encoded}",
        "sms": f"sms:{phone}?body={encoded}",
        "tel": f"tel:{phone}",
    }


async def generate_family_messages(
    contacts: List[Contact],
    summary: str,
    patient_name: str,
    client=None,
) -> Dict[str, str]:
    """One message per distinct contact language, keyed by language value."""
    messages: Dict[str, str] = {}
    for contact in contacts:
        language = contact.language.value
        if language in messages:
            continue
        messages[language] = await ai.translate_family_message(
            summary, patient_name, language, client=client
        )
    return messages
