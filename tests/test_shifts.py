"""Tests for the shift lifecycle and bids."""

import asyncio
import datetime as dt

import pytest

from nepshift.config import Settings
from nepshift.errors import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    PreconditionError,
    StateError,
    ValidationError,
)
from nepshift.models import (
    ApplicationStatus,
    BidRequest,
    PayRange,
    ShiftCategory,
    ShiftDraft,
    ShiftStatus,
    ShiftTime,
)
from nepshift.notifications import list_notifications
from nepshift.shifts import (
    ShiftFilters,
    accept_application,
    apply_to_shift,
    change_shift_status,
    complete_shift,
    get_shift_transitions,
    list_received_applications,
    list_shift_applications,
    list_shifts,
    list_worker_applications,
    post_shift,
    reject_application,
    update_shift,
)
from tests.conftest import OPEN_SHIFT_ID


def make_draft(**overrides) -> ShiftDraft:
    fields = {
        "title": "Warehouse loading",
        "category": ShiftCategory.DELIVERY,
        "pay": PayRange(min=800, max=1200),
        "date": dt.date(2026, 12, 1),
        "time": ShiftTime(start="08:00 AM", end="04:00 PM"),
        "skills": ["lifting", " "],
    }
    fields.update(overrides)
    return ShiftDraft(**fields)


def make_bid(**overrides) -> BidRequest:
    fields = {"bid_amount": 1500, "estimated_arrival_time": "08:30 AM", "message": "Ready"}
    fields.update(overrides)
    return BidRequest(**fields)


class TestPostShift:
    def test_post_creates_open_shift(self, db, hirer):
        shift = post_shift(db, hirer, make_draft())

        assert shift.status == ShiftStatus.OPEN
        assert shift.hirer_id == hirer.id
        assert shift.skills == ["lifting"]
        assert shift.location.city == "Not Provided"
        assert db.shifts.get(shift.id) == shift
        assert [t.to_status for t in get_shift_transitions(db, hirer, shift.id)] == [
            ShiftStatus.OPEN
        ]

    def test_min_pay_above_max_rejected(self, db, hirer):
        with pytest.raises(ValidationError):
            post_shift(db, hirer, make_draft(pay=PayRange(min=1000, max=500)))

    @pytest.mark.parametrize(
        "overrides",
        [
            {"title": None},
            {"title": "  "},
            {"category": None},
            {"date": None},
            {"time": ShiftTime(start="08:00 AM")},
            {"pay": None},
            {"pay": PayRange(min=-1, max=10)},
        ],
    )
    def test_missing_or_invalid_fields(self, db, hirer, overrides):
        with pytest.raises(ValidationError):
            post_shift(db, hirer, make_draft(**overrides))

    def test_workers_cannot_post(self, db, worker):
        with pytest.raises(AuthorizationError):
            post_shift(db, worker, make_draft())


class TestUpdateShift:
    @pytest.mark.asyncio
    async def test_owner_edits_open_shift(self, db, hirer):
        changes = ShiftDraft(
            title="Wedding catering staff", pay=PayRange(min=1500, max=2000)
        )

        shift = await update_shift(db, hirer, OPEN_SHIFT_ID, changes)

        assert shift.title == "Wedding catering staff"
        assert shift.pay == PayRange(min=1500, max=2000)
        assert shift.category == ShiftCategory.EVENT_STAFF
        assert shift.location.city == "Kathmandu"
        assert db.shifts.get(OPEN_SHIFT_ID).title == "Wedding catering staff"

    @pytest.mark.asyncio
    async def test_edit_revalidates_pay_range(self, db, hirer):
        with pytest.raises(ValidationError):
            await update_shift(
                db, hirer, OPEN_SHIFT_ID, ShiftDraft(pay=PayRange(min=3000, max=2000))
            )
        assert db.shifts.get(OPEN_SHIFT_ID).pay == PayRange(min=1200, max=1800)

    @pytest.mark.asyncio
    async def test_only_owner_edits(self, db, worker):
        with pytest.raises(AuthorizationError):
            await update_shift(db, worker, OPEN_SHIFT_ID, ShiftDraft(title="Mine now"))

    @pytest.mark.asyncio
    async def test_reserved_shift_is_frozen(self, db, hirer, worker):
        application = await apply_to_shift(db, worker, OPEN_SHIFT_ID, make_bid())
        await accept_application(db, hirer, application.id)

        with pytest.raises(StateError):
            await update_shift(db, hirer, OPEN_SHIFT_ID, ShiftDraft(title="Changed"))


class TestApplyToShift:
    @pytest.mark.asyncio
    async def test_verified_worker_can_bid(self, db, worker):
        application = await apply_to_shift(db, worker, OPEN_SHIFT_ID, make_bid())

        assert application.status == ApplicationStatus.PENDING
        assert application.hirer_id == db.shifts.get(OPEN_SHIFT_ID).hirer_id
        assert list_worker_applications(db, worker) == [application]

    @pytest.mark.asyncio
    async def test_unverified_worker_rejected(self, db, unverified_worker):
        with pytest.raises(AuthorizationError):
            await apply_to_shift(db, unverified_worker, OPEN_SHIFT_ID, make_bid())

    @pytest.mark.asyncio
    async def test_hirer_cannot_bid(self, db, hirer):
        with pytest.raises(AuthorizationError):
            await apply_to_shift(db, hirer, OPEN_SHIFT_ID, make_bid())

    @pytest.mark.asyncio
    async def test_duplicate_active_bid_conflicts(self, db, worker):
        await apply_to_shift(db, worker, OPEN_SHIFT_ID, make_bid())
        with pytest.raises(ConflictError):
            await apply_to_shift(db, worker, OPEN_SHIFT_ID, make_bid(bid_amount=1400))

    @pytest.mark.asyncio
    async def test_can_bid_again_after_rejection(self, db, worker, hirer):
        first = await apply_to_shift(db, worker, OPEN_SHIFT_ID, make_bid())
        await reject_application(db, hirer, first.id)

        second = await apply_to_shift(db, worker, OPEN_SHIFT_ID, make_bid())
        assert second.id != first.id
        assert second.status == ApplicationStatus.PENDING

    @pytest.mark.asyncio
    async def test_concurrent_duplicate_bids_create_one_application(self, db, worker):
        results = await asyncio.gather(
            apply_to_shift(db, worker, OPEN_SHIFT_ID, make_bid()),
            apply_to_shift(db, worker, OPEN_SHIFT_ID, make_bid()),
            return_exceptions=True,
        )

        successes = [r for r in results if not isinstance(r, Exception)]
        conflicts = [r for r in results if isinstance(r, ConflictError)]
        assert len(successes) == 1
        assert len(conflicts) == 1
        assert len(db.get_applications_for_shift(OPEN_SHIFT_ID)) == 1

    @pytest.mark.parametrize(
        "overrides",
        [
            {"bid_amount": -5},
            {"estimated_arrival_time": "  "},
            {"message": "x" * 501},
        ],
    )
    @pytest.mark.asyncio
    async def test_invalid_bid(self, db, worker, overrides):
        with pytest.raises(ValidationError):
            await apply_to_shift(db, worker, OPEN_SHIFT_ID, make_bid(**overrides))

    @pytest.mark.asyncio
    async def test_unknown_shift(self, db, worker):
        with pytest.raises(NotFoundError):
            await apply_to_shift(db, worker, "missing", make_bid())


class TestAcceptApplication:
    @pytest.mark.asyncio
    async def test_accept_reserves_shift_and_closes_bidding(
        self, db, hirer, worker, second_worker
    ):
        application = await apply_to_shift(db, worker, OPEN_SHIFT_ID, make_bid())

        accepted = await accept_application(db, hirer, application.id)

        shift = db.shifts.get(OPEN_SHIFT_ID)
        assert accepted.status == ApplicationStatus.ACCEPTED
        assert accepted.decided_at is not None
        assert shift.status == ShiftStatus.RESERVED
        assert shift.worker_id == worker.id
        with pytest.raises(StateError):
            await apply_to_shift(db, second_worker, OPEN_SHIFT_ID, make_bid())

    @pytest.mark.asyncio
    async def test_accept_rejects_pending_siblings(self, db, hirer, worker, second_worker):
        chosen = await apply_to_shift(db, worker, OPEN_SHIFT_ID, make_bid())
        other = await apply_to_shift(db, second_worker, OPEN_SHIFT_ID, make_bid())

        await accept_application(db, hirer, chosen.id)

        assert db.applications.get(other.id).status == ApplicationStatus.REJECTED
        titles = [n.title for n in list_notifications(db, second_worker)]
        assert "Bid Not Selected" in titles

    @pytest.mark.asyncio
    async def test_siblings_left_pending_when_disabled(
        self, db, hirer, worker, second_worker
    ):
        chosen = await apply_to_shift(db, worker, OPEN_SHIFT_ID, make_bid())
        other = await apply_to_shift(db, second_worker, OPEN_SHIFT_ID, make_bid())

        await accept_application(
            db, hirer, chosen.id, Settings(auto_reject_sibling_bids=False)
        )

        assert db.applications.get(other.id).status == ApplicationStatus.PENDING
        with pytest.raises(StateError):
            await accept_application(db, hirer, other.id)

    @pytest.mark.asyncio
    async def test_only_owner_accepts(self, db, worker, second_worker):
        application = await apply_to_shift(db, worker, OPEN_SHIFT_ID, make_bid())
        with pytest.raises(AuthorizationError):
            await accept_application(db, second_worker, application.id)

    @pytest.mark.asyncio
    async def test_cannot_accept_twice(self, db, hirer, worker):
        application = await apply_to_shift(db, worker, OPEN_SHIFT_ID, make_bid())
        await accept_application(db, hirer, application.id)
        with pytest.raises(StateError):
            await accept_application(db, hirer, application.id)

    @pytest.mark.asyncio
    async def test_accept_racing_apply(self, db, hirer, worker, second_worker):
        application = await apply_to_shift(db, worker, OPEN_SHIFT_ID, make_bid())

        results = await asyncio.gather(
            accept_application(db, hirer, application.id),
            apply_to_shift(db, second_worker, OPEN_SHIFT_ID, make_bid()),
            return_exceptions=True,
        )

        assert not isinstance(results[0], Exception)
        shift = db.shifts.get(OPEN_SHIFT_ID)
        assert shift.worker_id == worker.id
        # Whichever ran second, no bid is left pending on a reserved shift.
        pending = [
            a
            for a in db.get_applications_for_shift(OPEN_SHIFT_ID)
            if a.status == ApplicationStatus.PENDING
        ]
        assert pending == []


class TestRejectApplication:
    @pytest.mark.asyncio
    async def test_reject_pending(self, db, hirer, worker):
        application = await apply_to_shift(db, worker, OPEN_SHIFT_ID, make_bid())
        rejected = await reject_application(db, hirer, application.id)

        assert rejected.status == ApplicationStatus.REJECTED
        assert db.shifts.get(OPEN_SHIFT_ID).status == ShiftStatus.OPEN

    @pytest.mark.asyncio
    async def test_only_owner_rejects(self, db, worker):
        application = await apply_to_shift(db, worker, OPEN_SHIFT_ID, make_bid())
        with pytest.raises(AuthorizationError):
            await reject_application(db, worker, application.id)

    @pytest.mark.asyncio
    async def test_cannot_reject_decided(self, db, hirer, worker):
        application = await apply_to_shift(db, worker, OPEN_SHIFT_ID, make_bid())
        await reject_application(db, hirer, application.id)
        with pytest.raises(StateError):
            await reject_application(db, hirer, application.id)


class TestShiftStatus:
    @pytest.mark.asyncio
    async def test_forward_moves(self, db, hirer, worker):
        application = await apply_to_shift(db, worker, OPEN_SHIFT_ID, make_bid())
        await accept_application(db, hirer, application.id)

        shift = await change_shift_status(db, hirer, OPEN_SHIFT_ID, ShiftStatus.IN_PROGRESS)
        assert shift.status == ShiftStatus.IN_PROGRESS

        with pytest.raises(StateError):
            await change_shift_status(db, hirer, OPEN_SHIFT_ID, ShiftStatus.RESERVED)

        shift = await change_shift_status(db, hirer, OPEN_SHIFT_ID, ShiftStatus.COMPLETED)
        assert shift.status == ShiftStatus.COMPLETED
        assert db.worker_profiles.get(worker.id).total_jobs_completed == 1

        history = [t.to_status for t in get_shift_transitions(db, worker, OPEN_SHIFT_ID)]
        assert history == [
            ShiftStatus.RESERVED,
            ShiftStatus.IN_PROGRESS,
            ShiftStatus.COMPLETED,
        ]

    @pytest.mark.asyncio
    async def test_progress_needs_assigned_worker(self, db, hirer):
        with pytest.raises(PreconditionError):
            await change_shift_status(db, hirer, OPEN_SHIFT_ID, ShiftStatus.IN_PROGRESS)

    @pytest.mark.asyncio
    async def test_cancel_rejects_pending_bids(self, db, hirer, worker):
        application = await apply_to_shift(db, worker, OPEN_SHIFT_ID, make_bid())

        shift = await change_shift_status(db, hirer, OPEN_SHIFT_ID, ShiftStatus.CANCELLED)

        assert shift.status == ShiftStatus.CANCELLED
        assert db.applications.get(application.id).status == ApplicationStatus.REJECTED
        assert list_notifications(db, worker)[0].title == "Shift Cancelled"
        with pytest.raises(StateError):
            await change_shift_status(db, hirer, OPEN_SHIFT_ID, ShiftStatus.OPEN)

    @pytest.mark.asyncio
    async def test_only_owner_changes_status(self, db, worker):
        with pytest.raises(AuthorizationError):
            await change_shift_status(db, worker, OPEN_SHIFT_ID, ShiftStatus.CANCELLED)


class TestCompleteShift:
    @pytest.mark.asyncio
    async def test_complete_updates_stats(self, db, hirer, worker):
        application = await apply_to_shift(db, worker, OPEN_SHIFT_ID, make_bid())
        await accept_application(db, hirer, application.id)
        await change_shift_status(db, hirer, OPEN_SHIFT_ID, ShiftStatus.IN_PROGRESS)

        shift = await complete_shift(db, hirer, OPEN_SHIFT_ID)

        assert shift.status == ShiftStatus.COMPLETED
        assert db.worker_profiles.get(worker.id).total_jobs_completed == 1
        assert db.users.get(hirer.id).total_hires == 1

    @pytest.mark.asyncio
    async def test_complete_twice_is_state_error(self, db, hirer, worker):
        application = await apply_to_shift(db, worker, OPEN_SHIFT_ID, make_bid())
        await accept_application(db, hirer, application.id)
        await complete_shift(db, hirer, OPEN_SHIFT_ID)

        with pytest.raises(StateError):
            await complete_shift(db, hirer, OPEN_SHIFT_ID)
        assert db.worker_profiles.get(worker.id).total_jobs_completed == 1

    @pytest.mark.asyncio
    async def test_complete_without_worker(self, db, hirer):
        with pytest.raises(PreconditionError):
            await complete_shift(db, hirer, OPEN_SHIFT_ID)

    @pytest.mark.asyncio
    async def test_only_owner_completes(self, db, hirer, worker):
        application = await apply_to_shift(db, worker, OPEN_SHIFT_ID, make_bid())
        await accept_application(db, hirer, application.id)
        with pytest.raises(AuthorizationError):
            await complete_shift(db, worker, OPEN_SHIFT_ID)


class TestQueries:
    def test_browse_filters(self, db, hirer):
        post_shift(
            db,
            hirer,
            make_draft(pay=PayRange(min=300, max=400), location={"city": "Pokhara"}),
        )

        assert [s.id for s in list_shifts(db, ShiftFilters(city="kathmandu"))] == [
            OPEN_SHIFT_ID
        ]
        assert len(list_shifts(db, ShiftFilters(max_pay=500))) == 1
        assert len(list_shifts(db, ShiftFilters(min_pay=1000))) == 1
        assert list_shifts(db, ShiftFilters(category=ShiftCategory.TEACHING)) == []
        assert len(list_shifts(db)) == 2

    @pytest.mark.asyncio
    async def test_applicants_visible_to_owner_only(self, db, hirer, worker):
        await apply_to_shift(db, worker, OPEN_SHIFT_ID, make_bid())

        assert len(list_shift_applications(db, hirer, OPEN_SHIFT_ID)) == 1
        with pytest.raises(AuthorizationError):
            list_shift_applications(db, worker, OPEN_SHIFT_ID)

    @pytest.mark.asyncio
    async def test_received_bids_across_shifts(
        self, db, hirer, worker, second_worker
    ):
        other = post_shift(db, hirer, make_draft())
        first = await apply_to_shift(db, worker, OPEN_SHIFT_ID, make_bid())
        second = await apply_to_shift(db, second_worker, other.id, make_bid())
        await reject_application(db, hirer, first.id)

        received = list_received_applications(db, hirer)
        assert {a.id for a in received} == {first.id, second.id}
        pending = list_received_applications(db, hirer, ApplicationStatus.PENDING)
        assert [a.id for a in pending] == [second.id]
        with pytest.raises(AuthorizationError):
            list_received_applications(db, worker)
