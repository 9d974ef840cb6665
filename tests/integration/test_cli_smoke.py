import json
from pathlib import Path

import pytest

import tapwater.cli as cli
from conftest import FakeHttpClient, arcgis_payload, census_payload
from tapwater.common.constants import EXIT_HARD_FAIL, EXIT_LOOKUP_FAILED, EXIT_SUCCESS
from tapwater.pipeline.builder import build_services


@pytest.fixture()
def fake_http(monkeypatch) -> FakeHttpClient:
    http = FakeHttpClient(
        {
            "geocoding.geo.census.gov": census_payload([(39.78, -89.65)]),
            "Water_System_Boundaries": arcgis_payload([("IL1234567", "SPRINGFIELD", "Illinois")]),
        }
    )

    def _build(config, db_path, **kwargs):
        return build_services(config, db_path, http_client=http, **kwargs)

    monkeypatch.setattr(cli, "build_services", _build)
    return http


@pytest.mark.integration
def test_cli_address_lookup_prints_red_verdict(fake_http, sample_db: Path, capsys):
    exit_code = cli.main(
        ["--address", "123 Main St, Springfield, IL", "--db", str(sample_db), "--as-of", "2026-10-19"]
    )

    payload = json.loads(capsys.readouterr().out)
    assert exit_code == EXIT_SUCCESS
    assert payload["status"] == "success"
    assert payload["utility"]["system_id"] == "IL1234567"
    assert payload["tier"] == "RED"


@pytest.mark.integration
def test_cli_coordinates_with_violation_listing(fake_http, sample_db: Path, capsys):
    exit_code = cli.main(
        [
            "--lat",
            "39.78",
            "--lon",
            "-89.65",
            "--db",
            str(sample_db),
            "--as-of",
            "2026-10-19",
            "--config-dir",
            "config",
            "--violations",
        ]
    )

    payload = json.loads(capsys.readouterr().out)
    assert exit_code == EXIT_SUCCESS
    assert fake_http.calls_to("census") == []
    assert [v["description"] for v in payload["violations"]] == ["Nitrate MCL", "Monitoring, routine major"]
    assert [v["description"] for v in payload["triggering_violations"]] == ["Nitrate MCL"]


@pytest.mark.integration
def test_cli_no_utility_exits_with_lookup_failure(fake_http, sample_db: Path, capsys):
    fake_http.routes["Water_System_Boundaries"] = arcgis_payload([])

    exit_code = cli.main(["--lat", "47.0", "--lon", "-120.0", "--db", str(sample_db)])

    payload = json.loads(capsys.readouterr().out)
    assert exit_code == EXIT_LOOKUP_FAILED
    assert payload["status"] == "failure"
    assert payload["stage"] == "spatial_resolver"
    assert payload["kind"] == "NO_UTILITY_FOUND"


@pytest.mark.integration
def test_cli_missing_database_is_hard_failure(fake_http, tmp_path: Path, capsys):
    exit_code = cli.main(["--address", "123 Main St, Springfield, IL", "--db", str(tmp_path / "none.db")])

    assert exit_code == EXIT_HARD_FAIL
    assert "Error:" in capsys.readouterr().err


@pytest.mark.integration
def test_cli_out_of_range_coordinates_are_rejected(fake_http, sample_db: Path, capsys):
    exit_code = cli.main(["--lat", "123.0", "--lon", "0.0", "--db", str(sample_db)])

    assert exit_code == EXIT_LOOKUP_FAILED
    assert fake_http.calls == []


@pytest.mark.integration
def test_cli_explains_reported_tier_not_listed_page(fake_http, make_violations_db, tmp_path: Path, capsys):
    db = make_violations_db(
        [
            ("IL1234567", "Nitrate MCL", "2010-01-01", None, "Unaddressed", "Y"),
            ("IL1234567", "Monitoring", "2025-01-01", "2025-02-01", "Resolved", "N"),
        ]
    )
    overlay = tmp_path / "overlay"
    overlay.mkdir()
    (overlay / "services.yml").write_text("compliance:\n  page_size: 1\n", encoding="utf-8")

    exit_code = cli.main(
        [
            "--lat",
            "39.78",
            "--lon",
            "-89.65",
            "--db",
            str(db),
            "--as-of",
            "2026-10-19",
            "--config-dir",
            "config",
            "--overlay-config-dir",
            str(overlay),
            "--violations",
        ]
    )

    payload = json.loads(capsys.readouterr().out)
    assert exit_code == EXIT_SUCCESS
    assert payload["tier"] == "RED"
    assert [v["description"] for v in payload["violations"]] == ["Monitoring"]
    assert payload["triggering_violations"] == []
