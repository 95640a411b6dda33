import asyncio
from datetime import date

import httpx
import pytest

from kpi_portal.core.schemas import ApiResponse
from kpi_portal.models.kpi_review import KPIReview
from kpi_portal.schemas.kpi import KPIResponse
from kpi_portal.services.draft_store import DraftStore, MemoryDraftBackend, SelfRatingDraft
from kpi_portal.services.notifier import RecordingNotifier
from kpi_portal.services.review_client import ReviewServiceClient
from kpi_portal.services.review_session import ReviewSession
from kpi_portal.services.review_state_machine import NO_MEETING_PROMPT, MeetingRecord

BASE_URL = "http://testserver/api"

@pytest.fixture
def drafts():
    return DraftStore(MemoryDraftBackend())

def _fill_self_rating(session):
    first, second = session.kpi.items
    session.set_rating(first.id, 1.25)
    session.set_rating(second.id, 1.5)
    session.set_comment(first.id, "Steady")
    session.add_accomplishment(title="Billing migration", employee_rating=1.5)
    session.add_accomplishment(title="On-call rotation", employee_rating=1.25)
    session.signature = "Jane Doe"
    session.review_date = date(2026, 3, 31)

def test_full_employee_flow(asgi_transport, make_kpi, drafts, db_session):
    kpi = make_kpi()
    notifier = RecordingNotifier()

    async def scenario():
        async with ReviewServiceClient(base_url=BASE_URL, transport=asgi_transport) as client:
            session = ReviewSession(client, kpi.id, notifier=notifier, drafts=drafts)
            assert await session.load()
            assert session.review_status == "none"
            assert await session.acknowledge("Jane Doe")
            assert await session.load()
            assert session.review_status == "pending"

            _fill_self_rating(session)
            live = session.summary()
            assert live.completion == 100
            assert live.percentage == pytest.approx(5.5 / 6 * 100)

            assert session.save_draft()
            assert await session.submit_self_rating()
            return session

    session = asyncio.run(scenario())
    assert session.review_status == "employee_submitted"
    assert drafts.load(kpi.id) is None
    assert ("success", "Self-rating submitted") in notifier.messages

    review = db_session.query(KPIReview).filter(KPIReview.kpi_id == kpi.id).one()
    assert [a.title for a in review.accomplishments] == ["Billing migration", "On-call rotation"]
    assert review.item_ratings["employee"][kpi.items[0].id]["comment"] == "Steady"

def test_load_restores_draft(asgi_transport, make_kpi, drafts):
    kpi = make_kpi(status="acknowledged")
    drafts.save(kpi.id, SelfRatingDraft(ratings={kpi.items[0].id: 1.0}, signature="Draft Sig"))
    notifier = RecordingNotifier()

    async def scenario():
        async with ReviewServiceClient(base_url=BASE_URL, transport=asgi_transport) as client:
            session = ReviewSession(client, kpi.id, notifier=notifier, drafts=drafts)
            await session.load()
            return session

    session = asyncio.run(scenario())
    assert session.ratings == {kpi.items[0].id: 1.0}
    assert session.signature == "Draft Sig"
    assert notifier.messages[-1][0] == "info"

def test_submit_guard_failure_does_not_call_server(make_kpi, drafts):
    calls = []

    def handler(request):
        calls.append((request.method, request.url.path))
        return httpx.Response(500)

    notifier = RecordingNotifier()
    session = ReviewSession(
        ReviewServiceClient(base_url=BASE_URL, transport=httpx.MockTransport(handler)),
        1, notifier=notifier, drafts=drafts,
    )
    session.kpi = KPIResponse(id=1, employee_id=101, title="KPI", period="quarterly", status="acknowledged", items=[])
    session.set_rating(0, 1.25)
    session.add_accomplishment(title="Only one", employee_rating=1.25)
    session.signature = "Jane"
    session.review_date = date(2026, 3, 31)

    assert asyncio.run(session.submit_self_rating()) is False
    assert calls == []
    assert notifier.messages[-1][0] == "error"
    assert "at least 2 accomplishments" in notifier.messages[-1][1]

def test_failed_submit_keeps_local_state_and_draft(drafts):
    def handler(request):
        body = ApiResponse.fail("Database unavailable", code="INTERNAL_ERROR").to_dict()
        return httpx.Response(500, json=body)

    notifier = RecordingNotifier()
    session = ReviewSession(
        ReviewServiceClient(base_url=BASE_URL, transport=httpx.MockTransport(handler)),
        1, notifier=notifier, drafts=drafts,
    )
    session.kpi = KPIResponse(id=1, employee_id=101, title="KPI", period="quarterly", status="acknowledged", items=[])
    session.set_rating(0, 1.25)
    session.add_accomplishment(title="One", employee_rating=1.25)
    session.add_accomplishment(title="Two", employee_rating=1.5)
    session.signature = "Jane"
    session.review_date = date(2026, 3, 31)
    session.save_draft()

    assert asyncio.run(session.submit_self_rating()) is False
    assert session.ratings == {0: 1.25}
    assert len(session.accomplishments) == 2
    assert session.review is None
    assert drafts.load(1) is not None
    assert notifier.messages[-1] == ("error", "Database unavailable")

def test_load_failure_is_reported():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    notifier = RecordingNotifier()
    session = ReviewSession(
        ReviewServiceClient(base_url=BASE_URL, transport=httpx.MockTransport(handler)),
        1, notifier=notifier, drafts=DraftStore(MemoryDraftBackend()),
    )
    assert asyncio.run(session.load()) is False
    assert notifier.messages[-1][0] == "error"

def test_remove_accomplishment_below_minimum_warns(drafts):
    notifier = RecordingNotifier()
    session = ReviewSession(ReviewServiceClient(base_url=BASE_URL), 1, notifier=notifier, drafts=drafts)
    session.add_accomplishment(title="One")
    session.add_accomplishment(title="Two")
    assert session.remove_accomplishment(0) is False
    assert len(session.accomplishments) == 2
    assert notifier.messages[-1][0] == "warning"

def _awaiting_confirmation(db_session, make_kpi):
    kpi = make_kpi(status="acknowledged")
    review = KPIReview(
        kpi_id=kpi.id,
        employee_id=kpi.employee_id,
        review_status="awaiting_employee_confirmation",
    )
    db_session.add(review)
    db_session.commit()
    return kpi

def test_approve_without_meeting_asks_for_confirmation(asgi_transport, make_kpi, drafts, db_session):
    kpi = _awaiting_confirmation(db_session, make_kpi)
    notifier = RecordingNotifier(confirm_reply=True)

    async def scenario():
        async with ReviewServiceClient(base_url=BASE_URL, transport=asgi_transport) as client:
            session = ReviewSession(client, kpi.id, notifier=notifier, drafts=drafts)
            await session.load()
            approved = await session.approve("Jane Doe", MeetingRecord(meeting_confirmed=False))
            return session, approved

    session, approved = asyncio.run(scenario())
    assert approved
    assert notifier.prompts == [NO_MEETING_PROMPT]
    assert session.review_status == "completed"
    assert session.review.no_meeting_acknowledged is True

def test_cancelled_no_meeting_prompt_stops_approval(asgi_transport, make_kpi, drafts, db_session):
    kpi = _awaiting_confirmation(db_session, make_kpi)
    notifier = RecordingNotifier(confirm_reply=False)

    async def scenario():
        async with ReviewServiceClient(base_url=BASE_URL, transport=asgi_transport) as client:
            session = ReviewSession(client, kpi.id, notifier=notifier, drafts=drafts)
            await session.load()
            approved = await session.approve("Jane Doe", MeetingRecord(meeting_confirmed=False))
            return session, approved

    session, approved = asyncio.run(scenario())
    assert approved is False
    assert session.review_status == "awaiting_employee_confirmation"

def test_reject_flow(asgi_transport, make_kpi, drafts, db_session):
    kpi = _awaiting_confirmation(db_session, make_kpi)
    notifier = RecordingNotifier()

    async def scenario():
        async with ReviewServiceClient(base_url=BASE_URL, transport=asgi_transport) as client:
            session = ReviewSession(client, kpi.id, notifier=notifier, drafts=drafts)
            await session.load()
            assert await session.reject("") is False
            assert await session.reject("Ratings ignore the release freeze")
            return session

    session = asyncio.run(scenario())
    assert session.review_status == "rejected"
    assert session.review.employee_rejection_note == "Ratings ignore the release freeze"
