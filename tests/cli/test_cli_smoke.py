from __future__ import annotations

import json

from click.testing import CliRunner

from tariffstack.cli.main import cli
from tariffstack.tariff.programs import reset_registry_cache
from tests.helpers.schedules import CHAPTER_61_ROWS, stack_payload


def setup_function() -> None:
    reset_registry_cache()


def test_cli_help() -> None:
    runner = CliRunner()
    result = runner.invoke(cli, ["--help"])
    assert result.exit_code == 0
    assert "resolve" in result.output
    assert "hierarchy" in result.output


def test_cli_resolve() -> None:
    runner = CliRunner()
    result = runner.invoke(
        cli,
        ["resolve", "6109.10.00.04", "cn", "--base-rate", "16.5%", "--value", "1000"],
        catch_exceptions=False,
    )
    assert result.exit_code == 0
    payload = json.loads(result.output)
    assert payload["effective_rate"] == 169.0
    assert payload["estimated_duty"] == 1690.0


def test_cli_compare_with_custom_programs(tmp_path) -> None:
    path = tmp_path / "programs.json"
    path.write_text(json.dumps(stack_payload()), encoding="utf-8")
    runner = CliRunner()
    result = runner.invoke(
        cli,
        ["compare", "6109100004", "CN", "KR", "MX", "--base-rate", "16.5", "--programs", str(path)],
        catch_exceptions=False,
    )
    assert result.exit_code == 0
    payload = json.loads(result.output)
    assert [row["country_code"] for row in payload] == ["MX", "KR", "CN"]
    assert payload[-1]["effective_rate"] == 51.5


def test_cli_reports_broken_programs_file(tmp_path) -> None:
    path = tmp_path / "programs.json"
    path.write_text("{", encoding="utf-8")
    runner = CliRunner()
    result = runner.invoke(cli, ["resolve", "6109100004", "CN", "--programs", str(path)])
    assert result.exit_code == 1
    assert "Unable to read duty program configuration" in result.output


def test_cli_programs() -> None:
    runner = CliRunner()
    result = runner.invoke(cli, ["programs", "MX", "--hts-code", "6109100004"], catch_exceptions=False)
    assert result.exit_code == 0
    payload = json.loads(result.output)
    assert payload["country_name"] == "Mexico"
    assert "usmca" in [p["program_id"] for p in payload["programs"]]


def test_cli_hierarchy(tmp_path) -> None:
    rows = [
        {"code": r.code, "description": r.description, "indent": r.indent, "rate_text": r.rate_text}
        for r in CHAPTER_61_ROWS
    ]
    path = tmp_path / "rows.json"
    path.write_text(json.dumps(rows), encoding="utf-8")
    runner = CliRunner()
    result = runner.invoke(
        cli,
        ["hierarchy", str(path), "--product-type", "t-shirt", "--material", "cotton", "--top", "1"],
        catch_exceptions=False,
    )
    assert result.exit_code == 0
    payload = json.loads(result.output)
    assert payload["dropped_rows"] == 0
    [match] = payload["top_matches"]
    assert match["code"] == "6109.10.00.04"
    assert match["rate"] == "16.5%"
    assert match["path"].startswith("61: ")


def test_cli_hierarchy_rejects_non_object_rows(tmp_path) -> None:
    path = tmp_path / "rows.json"
    path.write_text("[1]", encoding="utf-8")
    runner = CliRunner()
    result = runner.invoke(cli, ["hierarchy", str(path)])
    assert result.exit_code == 1
    assert "Row 0" in result.output
    assert "must be a JSON object" in result.output


def test_cli_hierarchy_rejects_bad_indent(tmp_path) -> None:
    path = tmp_path / "rows.json"
    path.write_text(
        json.dumps([{"code": "61", "description": "Knitted apparel", "indent": "deep"}]),
        encoding="utf-8",
    )
    runner = CliRunner()
    result = runner.invoke(cli, ["hierarchy", str(path)])
    assert result.exit_code == 1
    assert "Row 0" in result.output
    assert "is not valid" in result.output
