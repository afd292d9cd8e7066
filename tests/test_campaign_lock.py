from __future__ import annotations

import asyncio
import json
import os
import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from leadflow.application.workflows import WorkflowService
from leadflow.infrastructure.campaign_lock import CampaignLockManager
from leadflow.infrastructure.jobs import InMemoryJobStore
from tests.fakes import make_params


class FakeClock:
    def __init__(self) -> None:
        self.now = 1_700_000_000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def alive():
    return {101, 202}


def _manager(tmp_path: Path, clock, alive, pid: int = 101) -> CampaignLockManager:
    return CampaignLockManager(tmp_path, pid=pid, clock=clock, process_exists=lambda p: p in alive)


def test_second_acquire_for_same_session_is_refused(tmp_path, clock, alive):
    locks = _manager(tmp_path, clock, alive)

    assert locks.acquire("S1", "outreach")
    assert not locks.acquire("S1", "outreach")
    assert locks.is_locked("S1")
    assert locks.acquire("S2")


def test_lock_file_contents(tmp_path, clock, alive):
    locks = _manager(tmp_path, clock, alive)
    locks.acquire("S1", "outreach")

    data = json.loads((tmp_path / "campaign_S1.lock").read_text())

    assert data["session_id"] == "S1"
    assert data["campaign_type"] == "outreach"
    assert data["pid"] == 101
    assert data["timestamp"] == clock.now
    assert data["start_time"].startswith("2023-11-14")


def test_lock_older_than_threshold_is_reclaimed_even_if_owner_alive(tmp_path, clock, alive):
    owner = _manager(tmp_path, clock, alive, pid=202)
    other = _manager(tmp_path, clock, alive, pid=101)
    assert owner.acquire("S1")

    clock.now += 29 * 60
    assert not other.acquire("S1")

    clock.now += 2 * 60
    assert other.acquire("S1")
    assert other.get_lock("S1").pid == 101


def test_lock_of_dead_process_is_reclaimed(tmp_path, clock, alive):
    _manager(tmp_path, clock, alive, pid=202).acquire("S1")
    alive.discard(202)

    assert not _manager(tmp_path, clock, alive).is_locked("S1")
    assert not (tmp_path / "campaign_S1.lock").exists()


def test_release_requires_ownership_unless_forced(tmp_path, clock, alive):
    owner = _manager(tmp_path, clock, alive, pid=202)
    other = _manager(tmp_path, clock, alive, pid=101)
    owner.acquire("S1")

    assert not other.release("S1")
    assert owner.is_locked("S1")

    assert other.release("S1", force=True)
    assert not owner.is_locked("S1")


def test_owner_release(tmp_path, clock, alive):
    locks = _manager(tmp_path, clock, alive)
    locks.acquire("S1")
    assert locks.release("S1")
    assert not locks.release("S1")
    assert locks.acquire("S1")


def test_list_active_evicts_stale_entries(tmp_path, clock, alive):
    locks = _manager(tmp_path, clock, alive)
    locks.acquire("old")
    clock.now += 31 * 60
    locks.acquire("new")

    active = locks.list_active()

    assert [entry["session_id"] for entry in active] == ["new"]
    assert active[0]["file"] == "campaign_new.lock"
    assert active[0]["age_minutes"] == 0.0
    assert not (tmp_path / "campaign_old.lock").exists()


def test_cleanup_all_ignores_ownership(tmp_path, clock, alive):
    _manager(tmp_path, clock, alive, pid=202).acquire("S1")
    _manager(tmp_path, clock, alive, pid=101).acquire("S2")

    assert _manager(tmp_path, clock, alive, pid=999).cleanup_all() == 2
    assert list(tmp_path.glob("campaign_*.lock")) == []


def test_release_owned_leaves_foreign_locks(tmp_path, clock, alive):
    _manager(tmp_path, clock, alive, pid=202).acquire("theirs")
    mine = _manager(tmp_path, clock, alive, pid=101)
    mine.acquire("a")
    mine.acquire("b")

    assert mine.release_owned() == 2
    assert [entry["session_id"] for entry in mine.list_active()] == ["theirs"]


def test_unsafe_session_ids_stay_inside_lock_dir(tmp_path, clock, alive):
    locks = _manager(tmp_path, clock, alive)
    assert locks.acquire("../../etc/passwd")
    assert [p.parent for p in tmp_path.glob("campaign_*.lock")] == [tmp_path]


def test_unreadable_recent_lock_refuses_acquire(tmp_path, alive):
    (tmp_path / "campaign_S1.lock").write_text("{not json")
    locks = CampaignLockManager(tmp_path, pid=101, process_exists=lambda p: p in alive)
    assert not locks.acquire("S1")


def test_default_process_check_uses_real_pid(tmp_path):
    locks = CampaignLockManager(tmp_path)
    assert locks.acquire("S1")
    assert locks.get_lock("S1").pid == os.getpid()
    assert not locks.acquire("S1")
    assert locks.release("S1")


def test_release_with_expected_record_spares_a_later_acquisition(tmp_path, clock, alive):
    locks = _manager(tmp_path, clock, alive)
    first = locks.acquire("S1", "outreach")

    clock.now += 31 * 60
    second = locks.acquire("S1", "outreach")
    assert second is not None and second != first

    assert not locks.release("S1", expected=first)
    assert locks.get_lock("S1") == second
    assert locks.release("S1", expected=second)
    assert not locks.is_locked("S1")


class GatedRunner:
    def __init__(self) -> None:
        self.gates: list[asyncio.Event] = []

    async def run(self, record) -> None:
        gate = asyncio.Event()
        self.gates.append(gate)
        await gate.wait()
        record.fail("stopped by test")

    async def aclose(self) -> None:
        return None


def test_finished_job_leaves_lock_reclaimed_by_a_later_job(tmp_path, clock, alive):
    locks = _manager(tmp_path, clock, alive)
    runner = GatedRunner()
    service = WorkflowService(InMemoryJobStore(), runner, locks=locks)
    params = make_params(session_id="S1", save_to_store=True)

    async def scenario() -> None:
        await service.start(params)
        await asyncio.sleep(0)
        clock.now += 31 * 60
        await service.start(params)
        await asyncio.sleep(0)

        runner.gates[0].set()
        for _ in range(5):
            await asyncio.sleep(0)
        assert locks.is_locked("S1")

        runner.gates[1].set()
        await service.shutdown()

    asyncio.run(scenario())

    assert not locks.is_locked("S1")
