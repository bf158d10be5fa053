from datetime import datetime, timedelta, timezone

from medscan.models import (
    ChatMessage,
    Contact,
    Differential,
    Language,
    Role,
    StructuredAIResponse,
    SuggestedMedicine,
)
from medscan.storage import (
    ACTIVE_SESSION_KEY,
    SESSIONS_KEY,
    group_sessions_by_date,
)

NOW = datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)


def _session_with_messages(sessions):
    session = sessions.create_session()
    reply = StructuredAIResponse(
        riskLevel="low",
        summary="Likely a common cold.",
        differentialDiagnosis=[Differential(condition="Cold", reasoning="Mild", confidence=70)],
        recommendedActions=["Rest"],
        suggestedMedications=[SuggestedMedicine(name="Paracetamol", form="Tablet")],
        confidenceScore=65,
    )
    return session.model_copy(
        update={
            "messages": [
                ChatMessage(role=Role.USER, text="I have a runny nose"),
                ChatMessage(role=Role.ASSISTANT, text=reply.summary, structuredResponse=reply),
            ]
        }
    )


def test_save_then_get_round_trips(sessions):
    session = _session_with_messages(sessions)
    sessions.save_session(session)

    assert sessions.get_session(session.id) == session


def test_create_session_is_not_persisted(sessions):
    session = sessions.create_session()

    assert session.title == "New Consultation"
    assert session.messages == []
    assert session.startTime == session.lastUpdated
    assert sessions.list_sessions() == []


def test_save_upserts_by_id(sessions):
    session = sessions.create_session()
    sessions.save_session(session)
    sessions.save_session(session.model_copy(update={"title": "Headache"}))

    stored = sessions.list_sessions()
    assert len(stored) == 1
    assert stored[0].title == "Headache"


def test_save_marks_session_active(sessions, store):
    first = sessions.create_session()
    second = sessions.create_session()
    sessions.save_session(first)
    sessions.save_session(second)

    assert store.get(ACTIVE_SESSION_KEY) == second.id


def test_list_orders_by_last_updated_desc(sessions):
    old = sessions.create_session().model_copy(update={"lastUpdated": NOW - timedelta(days=2)})
    new = sessions.create_session().model_copy(update={"lastUpdated": NOW})
    mid = sessions.create_session().model_copy(update={"lastUpdated": NOW - timedelta(hours=3)})
    for s in (old, new, mid):
        sessions.save_session(s)

    assert [s.id for s in sessions.list_sessions()] == [new.id, mid.id, old.id]


def test_delete_active_session_clears_pointer(sessions):
    session = sessions.create_session()
    sessions.save_session(session)

    assert sessions.delete_session(session.id) is True
    assert sessions.get_session(session.id) is None
    assert sessions.list_sessions() == []
    assert sessions.get_active_session_id() is None


def test_delete_other_session_keeps_pointer(sessions):
    keep = sessions.create_session()
    drop = sessions.create_session()
    sessions.save_session(drop)
    sessions.save_session(keep)

    sessions.delete_session(drop.id)

    assert sessions.get_active_session_id() == keep.id
    assert [s.id for s in sessions.list_sessions()] == [keep.id]


def test_delete_unknown_session_returns_false(sessions):
    assert sessions.delete_session("missing") is False


def test_corrupted_file_reads_as_empty(store, sessions):
    with open(store.path, "w") as f:
        f.write("{not json")

    assert sessions.list_sessions() == []
    assert sessions.get_session("anything") is None


def test_invalid_session_entries_read_as_empty(store, sessions):
    store.set(SESSIONS_KEY, [{"id": "x", "messages": "nope"}])

    assert sessions.list_sessions() == []


def test_last_active_or_new(sessions):
    fresh = sessions.get_last_active_or_new()
    assert sessions.get_session(fresh.id) is None

    older = sessions.create_session().model_copy(update={"lastUpdated": NOW - timedelta(days=1)})
    newer = sessions.create_session().model_copy(update={"lastUpdated": NOW})
    sessions.save_session(newer)
    sessions.save_session(older)
    assert sessions.get_last_active_or_new().id == older.id

    sessions.delete_session(older.id)
    assert sessions.get_last_active_or_new().id == newer.id


def test_group_sessions_by_date(sessions):
    def at(delta):
        return sessions.create_session().model_copy(update={"lastUpdated": NOW - delta})

    today = at(timedelta(hours=1))
    yesterday = at(timedelta(days=1))
    this_week = at(timedelta(days=4))
    older = at(timedelta(days=30))

    groups = group_sessions_by_date([older, today, this_week, yesterday], now=NOW)

    assert list(groups) == ["Today", "Yesterday", "Previous 7 Days", "Older"]
    assert groups["Today"] == [today]
    assert groups["Yesterday"] == [yesterday]
    assert groups["Previous 7 Days"] == [this_week]
    assert groups["Older"] == [older]


def test_group_sessions_drops_empty_buckets(sessions):
    session = sessions.create_session().model_copy(update={"lastUpdated": NOW})

    assert list(group_sessions_by_date([session], now=NOW)) == ["Today"]


def test_group_sessions_uses_callers_timezone(sessions):
    late_evening = sessions.create_session().model_copy(
        update={"lastUpdated": datetime(2026, 10, 16, 20, 0, tzinfo=timezone.utc)}
    )
    ist = timezone(timedelta(hours=5, minutes=30))

    assert list(group_sessions_by_date([late_evening], now=NOW)) == ["Yesterday"]
    assert list(group_sessions_by_date([late_evening], now=NOW, tz=ist)) == ["Today"]


def test_contacts_crud(contacts):
    mom = Contact(name="Asha", relation="Mother", phone="+91 98765 43210", language=Language.HINDI)
    contacts.save_contact(mom)
    contacts.save_contact(mom.model_copy(update={"relation": "Mom"}))

    stored = contacts.list_contacts()
    assert len(stored) == 1
    assert stored[0].relation == "Mom"
    assert contacts.get_contact(mom.id).language == Language.HINDI

    assert contacts.delete_contact(mom.id) is True
    assert contacts.list_contacts() == []
    assert contacts.delete_contact(mom.id) is False
