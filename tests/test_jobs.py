from __future__ import annotations

import threading

from zkuplc.jobs import JobManager


def test_jobs_run_in_order_and_record_results() -> None:
    manager = JobManager(history_size=10)
    first = manager.submit("prove", lambda payload: ({"n": payload["n"]}, 200), {"n": 1})
    second = manager.submit("prove", lambda payload: ({"error": "bad"}, 500), {"n": 2})
    manager.join()

    assert manager.get(first.job_id).status == "succeeded"
    assert manager.get(first.job_id).to_dict()["result"] == {"n": 1}
    failed = manager.get(second.job_id)
    assert failed.status == "failed"
    assert failed.error == "bad"
    assert [j.job_id for j in manager.list()] == [second.job_id, first.job_id]


def test_queued_job_can_be_canceled() -> None:
    manager = JobManager()
    gate = threading.Event()
    ran = []

    def blocking(payload):
        gate.wait(timeout=5)
        return {}, 200

    def should_not_run(payload):
        ran.append(payload)
        return {}, 200

    running = manager.submit("prove", blocking, {})
    queued = manager.submit("prove", should_not_run, {"x": 1})
    assert manager.cancel(queued.job_id) is True
    gate.set()
    manager.join()

    assert ran == []
    assert manager.get(queued.job_id).status == "canceled"
    assert manager.cancel(running.job_id) is False


def test_handler_exception_marks_job_failed() -> None:
    manager = JobManager()

    def explode(payload):
        raise RuntimeError("engine crashed")

    job = manager.submit("prove", explode, {})
    manager.join()
    assert manager.get(job.job_id).status == "failed"
    assert "engine crashed" in manager.get(job.job_id).error


def test_history_is_bounded() -> None:
    manager = JobManager(history_size=2)
    jobs = [manager.submit("prove", lambda p: ({}, 200), {}) for _ in range(3)]
    manager.join()
    assert manager.get(jobs[0].job_id) is None
    assert len(manager.list()) == 2


def test_pending_jobs_survive_a_full_history() -> None:
    manager = JobManager(history_size=1)
    gate = threading.Event()
    ran = []

    def handler(payload):
        if payload["n"] == 0:
            gate.wait(timeout=5)
        ran.append(payload["n"])
        return {"n": payload["n"]}, 200

    jobs = [manager.submit("prove", handler, {"n": n}) for n in range(3)]
    for job in jobs:
        assert manager.get(job.job_id) is not None
    gate.set()
    manager.join()

    assert ran == [0, 1, 2]
    assert manager.get(jobs[-1].job_id).result == {"n": 2}
    assert [j.job_id for j in manager.list()] == [jobs[-1].job_id]
