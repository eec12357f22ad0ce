"""Shared schedule rows and registries for tariff tests."""

from __future__ import annotations

from typing import List

import pytest

from tariffstack.tariff.hierarchy import ScheduleRow
from tariffstack.tariff.programs import DutyProgramRegistry, registry_from_payload, reset_registry_cache
from tests.helpers.schedules import CHAPTER_61_ROWS, stack_payload


@pytest.fixture(autouse=True)
def _isolated_registry(monkeypatch):
    monkeypatch.delenv("TARIFFSTACK_DUTY_PROGRAMS", raising=False)
    reset_registry_cache()
    yield
    reset_registry_cache()


@pytest.fixture()
def chapter_61_rows() -> List[ScheduleRow]:
    return list(CHAPTER_61_ROWS)


@pytest.fixture()
def stack_registry() -> DutyProgramRegistry:
    return registry_from_payload(stack_payload(), source="test")
