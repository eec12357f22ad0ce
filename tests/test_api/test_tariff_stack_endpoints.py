from __future__ import annotations

import logging

import pytest
from fastapi.testclient import TestClient

from tariffstack.api.app import app
from tariffstack.tariff.programs import RegistryConfigError, reset_registry_cache
from tests.helpers.schedules import CHAPTER_61_ROWS

client = TestClient(app)


@pytest.fixture(autouse=True)
def _packaged_registry(monkeypatch):
    monkeypatch.delenv("TARIFFSTACK_DUTY_PROGRAMS", raising=False)
    reset_registry_cache()
    yield
    reset_registry_cache()


def _rows_payload():
    return [
        {
            "code": row.code,
            "description": row.description,
            "indent": row.indent,
            "rate_text": row.rate_text,
        }
        for row in CHAPTER_61_ROWS
    ]


def test_health() -> None:
    response = client.get("/v1/health")
    assert response.status_code == 200
    assert response.json()["ok"] is True
    assert response.headers["X-Run-ID"]


def test_resolve() -> None:
    response = client.post(
        "/v1/tariff/resolve",
        json={"hts_code": "6109.10.00.04", "country_code": "cn", "base_rate": 16.5},
    )
    assert response.status_code == 200, response.text
    body = response.json()
    assert body["country_code"] == "CN"
    assert body["effective_rate"] == 169.0
    assert body["data_source"] == "registry"
    assert body["contributions"][0]["program_id"] == "base_rate"


def test_resolve_accepts_rate_text_and_value() -> None:
    response = client.post(
        "/v1/tariff/resolve",
        json={
            "hts_code": "6109100004",
            "country_code": "MX",
            "base_rate": "16.5%",
            "customs_value": 2000,
        },
    )
    assert response.status_code == 200, response.text
    body = response.json()
    assert body["effective_rate"] == 0
    assert body["estimated_duty"] == 0


def test_resolve_unknown_country_is_fallback() -> None:
    response = client.post(
        "/v1/tariff/resolve",
        json={"hts_code": "6109100004", "country_code": "ZZ", "base_rate": 16.5},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["data_source"] == "fallback"
    assert body["effective_rate"] == 26.5


def test_resolve_validation_error() -> None:
    response = client.post(
        "/v1/tariff/resolve",
        json={"hts_code": "6109100004", "country_code": "CHN", "base_rate": 16.5},
    )
    assert response.status_code == 422
    body = response.json()
    assert body["error"] == "VALIDATION_ERROR"
    assert body["fields"][0]["path"] == "request.country_code"


def test_resolve_rejects_negative_base_rate() -> None:
    response = client.post(
        "/v1/tariff/resolve",
        json={"hts_code": "6109100004", "country_code": "CN", "base_rate": -1},
    )
    assert response.status_code == 422


def test_hierarchy() -> None:
    response = client.post(
        "/v1/tariff/hierarchy",
        json={"rows": _rows_payload(), "keywords": {"productTypes": ["t-shirt"]}},
    )
    assert response.status_code == 200, response.text
    body = response.json()
    assert body["node_count"] == len(CHAPTER_61_ROWS)
    assert body["dropped_rows"] == 0
    assert body["top_matches"][:2] == ["6109100004", "6109100011"]

    chapter = body["roots"][0]
    assert chapter["id"] == "61"
    assert chapter["effective_rate"] == "Unknown"
    heading = chapter["children"][0]
    assert heading["id"] == "6109"
    assert heading["relevance_score"] == 80
    assert heading["effective_rate_pct"] == 16.5


def test_hierarchy_reports_dropped_and_orphans() -> None:
    response = client.post(
        "/v1/tariff/hierarchy",
        json={
            "rows": [
                {"code": "6109", "description": "T-shirts", "indent": 2, "rate_text": "16.5%"},
                {"code": "61X9", "description": "Broken", "indent": 3},
            ]
        },
    )
    assert response.status_code == 200
    body = response.json()
    assert body["dropped_rows"] == 1
    assert body["dropped_codes"] == ["61X9"]
    assert body["warnings"][0]["kind"] == "orphan_row"


def test_compare() -> None:
    response = client.post(
        "/v1/tariff/compare",
        json={"hts_code": "6109100004", "countries": ["CN", "MX", "KR"], "base_rate": 16.5},
    )
    assert response.status_code == 200, response.text
    countries = [r["country_code"] for r in response.json()["results"]]
    assert countries == ["MX", "KR", "CN"]


def test_programs_for_country() -> None:
    response = client.get("/v1/tariff/programs/cn", params={"hts_code": "6109.10.00.04"})
    assert response.status_code == 200, response.text
    body = response.json()
    assert body["country_name"] == "China"
    assert body["data_source"] == "registry"
    ids = [p["program_id"] for p in body["programs"]]
    assert "section_301" in ids
    rate_301 = next(p["rate"] for p in body["programs"] if p["program_id"] == "section_301")
    assert rate_301 == 7.5


def test_request_logs_carry_run_id(caplog) -> None:
    caplog.set_level(logging.INFO, logger="tariffstack")
    response = client.get("/v1/health")
    assert response.status_code == 200

    run_ids = {
        record.payload["run_id"]
        for record in caplog.records
        if getattr(record, "payload", None) and record.payload.get("run_id")
    }
    assert run_ids == {response.headers["X-Run-ID"]}


def test_incoming_run_id_is_echoed() -> None:
    response = client.get("/health", headers={"X-Run-ID": "batch-42"})
    assert response.headers["X-Run-ID"] == "batch-42"


def test_startup_fails_on_broken_registry(tmp_path, monkeypatch) -> None:
    path = tmp_path / "programs.json"
    path.write_text("[]", encoding="utf-8")
    monkeypatch.setenv("TARIFFSTACK_DUTY_PROGRAMS", str(path))
    reset_registry_cache()

    with pytest.raises(RegistryConfigError):
        with TestClient(app):
            pass
