# medscan/routers/family.py
from typing import List

from fastapi import APIRouter, Depends, HTTPException

from medscan.deps import get_ai_client, get_contact_store
from medscan.family import build_contact_links, generate_family_messages
from medscan.models import Contact, FamilyMessageRequest
from medscan.storage import ContactStore

router = APIRouter(tags=["family"])


@router.get("/contacts", response_model=List[Contact])
def list_contacts(contacts: ContactStore = Depends(get_contact_store)):
    return contacts.list_contacts()


@router.post("/contacts", response_model=Contact, status_code=201)
def create_contact(contact: Contact, contacts: ContactStore = Depends(get_contact_store)):
    return contacts.save_contact(contact)


@router.put("/contacts/{contact_id}", response_model=Contact)
def update_contact(
    contact_id: str,
    contact: Contact,
    contacts: ContactStore = Depends(get_contact_store),
):
    if contacts.get_contact(contact_id) is None:
        raise HTTPException(status_code=404, detail="Contact not found")
    return contacts.save_contact(contact.model_copy(update={"id": contact_id}))


@router.delete("/contacts/{contact_id}")
def delete_contact(contact_id: str, contacts: ContactStore = Depends(get_contact_store)):
    if not contacts.delete_contact(contact_id):
        raise HTTPException(status_code=404, detail="Contact not found")
    return {"deleted": contact_id}


@router.post("/family/messages")
async def create_family_messages(
    req: FamilyMessageRequest,
    contacts: ContactStore = Depends(get_contact_store),
    client=Depends(get_ai_client),
):
    selected = [c for c in contacts.list_contacts() if c.id in set(req.contactIds)]
    if not selected:
        raise HTTPException(status_code=404, detail="No matching contacts")

    messages = await generate_family_messages(
        selected, req.medicalSummary, req.patientName, client=client
    )

    results = []
    for contact in selected:
        message = messages[contact.language.value]
        results.append(
            {
                "contact": contact.model_dump(mode="json"),
                "message": message,
                "links": build_contact_links(contact, message),
            }
        )
    return {"messages": messages, "contacts": results}
