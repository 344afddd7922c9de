"""Repair pass tests: anomaly detection and idempotent re-runs."""

from __future__ import annotations

import pytest

from credpoints.activity.service import list_for_request
from credpoints.exceptions import DependencyFailure
from credpoints.ledger.service import get_balance
from credpoints.requests import steps
from credpoints.requests.repair import find_anomalies, repair_all

pytestmark = pytest.mark.asyncio


async def _store_down(*_args, **_kwargs):
    raise ConnectionError("store unreachable")


class TestRepair:

    async def test_healthy_requests_have_no_anomalies(self, db_session, campus, lifecycle):
        request = await lifecycle.submit(campus.staff, "Lab cleanup", 30)
        await lifecycle.approve(campus.advisor, request.id, 30)
        other = await lifecycle.submit(campus.staff, "Poster", 10)
        await lifecycle.request_correction(campus.advisor, other.id, "add photos")

        assert await find_anomalies(db_session) == []

    async def test_repair_all_completes_interrupted_transitions(self, db_session, campus, lifecycle, monkeypatch):
        approved = await lifecycle.submit(campus.staff, "Lab cleanup", 30)
        corrected = await lifecycle.submit(campus.other_staff, "Poster", 10)
        approved_id, corrected_id = approved.id, corrected.id

        monkeypatch.setattr(steps, "apply_activity_step", _store_down)
        with pytest.raises(DependencyFailure):
            await lifecycle.approve(campus.advisor, approved_id, 30)
        with pytest.raises(DependencyFailure):
            await lifecycle.request_correction(campus.advisor, corrected_id, "add photos")
        monkeypatch.undo()

        anomalies = dict(await find_anomalies(db_session))
        assert anomalies == {approved_id: ["activity"], corrected_id: ["activity"]}

        report = await repair_all(db_session)
        assert report.found == 2
        assert report.failed == {}
        assert report.repaired == {approved_id: ["activity"], corrected_id: ["activity"]}
        assert await find_anomalies(db_session) == []
        assert len(await list_for_request(db_session, approved_id)) == 1
        assert await get_balance(db_session, campus.staff.id) == 30

    async def test_repair_all_reports_failures_and_continues(self, db_session, campus, lifecycle, monkeypatch):
        request = await lifecycle.submit(campus.staff, "Lab cleanup", 30)
        request_id = request.id
        monkeypatch.setattr(steps, "apply_notification_step", _store_down)
        with pytest.raises(DependencyFailure):
            await lifecycle.reject(campus.advisor, request_id)

        report = await repair_all(db_session)

        assert report.found == 1
        assert report.failed == {request_id: ["notify"]}
        assert report.repaired == {}

    async def test_old_anomaly_is_found_behind_newer_requests(self, db_session, campus, lifecycle, monkeypatch):
        request_id = (await lifecycle.submit(campus.staff, "Lab cleanup", 30)).id
        monkeypatch.setattr(steps, "apply_activity_step", _store_down)
        with pytest.raises(DependencyFailure):
            await lifecycle.approve(campus.advisor, request_id, 30)
        monkeypatch.undo()

        for i in range(3):
            newer_id = (await lifecycle.submit(campus.other_staff, f"Task {i}", 5)).id
            await lifecycle.approve(campus.advisor, newer_id, 5)

        assert await find_anomalies(db_session, limit=2) == [(request_id, ["activity"])]

        report = await repair_all(db_session, limit=2)
        assert report.found == 1
        assert report.repaired == {request_id: ["activity"]}
        assert len(await list_for_request(db_session, request_id)) == 1

    async def test_anomaly_from_an_earlier_revision_is_not_reported(self, db_session, campus, lifecycle, monkeypatch):
        request_id = (await lifecycle.submit(campus.staff, "Lab cleanup", 30)).id
        monkeypatch.setattr(steps, "apply_activity_step", _store_down)
        with pytest.raises(DependencyFailure):
            await lifecycle.request_correction(campus.advisor, request_id, "add photos")
        monkeypatch.undo()

        await lifecycle.resubmit(campus.staff, request_id, "Lab cleanup with photos", 30)

        assert await find_anomalies(db_session) == []
