from __future__ import annotations

import logging

from tariffstack.observability import current_run_id, log_event, run_scope


def test_run_scope_binds_and_restores() -> None:
    assert current_run_id() is None
    with run_scope() as run_id:
        assert current_run_id() == run_id
        with run_scope() as inner:
            assert inner == run_id
        with run_scope("explicit") as other:
            assert other == "explicit"
        assert current_run_id() == run_id
    assert current_run_id() is None


def test_log_event_attaches_payload(caplog) -> None:
    caplog.set_level(logging.DEBUG, logger="tariffstack")
    with run_scope("run-1"):
        log_event("resolve.done", country="CN")
        log_event("resolve.detail", level=logging.DEBUG, programs=4)

    records = [r for r in caplog.records if r.name == "tariffstack.observability"]
    assert [r.getMessage() for r in records] == ["resolve.done", "resolve.detail"]
    assert records[0].payload == {"run_id": "run-1", "country": "CN"}
    assert records[1].levelno == logging.DEBUG
