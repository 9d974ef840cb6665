import json
import logging
from datetime import date

import pytest

from tapwater.common.cancellation import CancelToken
from tapwater.common.errors import InvalidInput, NoUtilityFound, ResolutionCancelled
from tapwater.common.ids import generate_request_id
from tapwater.common.logging import JsonLineFormatter, log_event
from tapwater.common.models import (
    Coordinates,
    Failure,
    SafetyTier,
    Stage,
    Success,
    UtilityMatch,
    ViolationStatus,
)
from tapwater.common.time_utils import parse_as_of, parse_iso_date, years_before


@pytest.mark.parametrize("lat, lon", [(90.1, 0.0), (-90.1, 0.0), (0.0, 180.5), (0.0, -181.0)])
def test_coordinates_out_of_range_are_invalid_input(lat, lon):
    with pytest.raises(InvalidInput):
        Coordinates(lat, lon)


def test_coordinates_key_includes_crs():
    assert Coordinates(39.78, -89.65).key == (39.78, -89.65, 4326)
    assert Coordinates(39.78, -89.65, epsg=4269).key != Coordinates(39.78, -89.65).key


def test_utility_match_requires_system_id():
    with pytest.raises(ValueError):
        UtilityMatch(system_id="", name="X", regulating_agency="Y")


def test_violation_status_unresolved_states():
    assert ViolationStatus("Unaddressed").unresolved
    assert ViolationStatus("Addressed").unresolved
    assert not ViolationStatus("Resolved").unresolved
    assert ViolationStatus("something else") is ViolationStatus.UNKNOWN


def test_result_serialisation():
    utility = UtilityMatch("IL1234567", "SPRINGFIELD", "Illinois")
    success = Success(utility, SafetyTier.AMBER)
    failure = Failure(Stage.SPATIAL_RESOLVER, NoUtilityFound("outside any service area"))

    assert success.to_dict()["tier"] == "AMBER"
    assert success.to_dict()["verdict"] == "Caution"
    assert failure.kind == "NO_UTILITY_FOUND"
    assert failure.to_dict() == {
        "status": "failure",
        "stage": "spatial_resolver",
        "kind": "NO_UTILITY_FOUND",
        "reason": "outside any service area",
    }


def test_child_token_follows_parent_but_cancels_alone():
    parent = CancelToken()
    child = parent.child()

    child.cancel("stage timed out")
    assert child.cancelled and not parent.cancelled

    other = parent.child()
    parent.cancel("superseded")
    assert other.cancelled
    with pytest.raises(ResolutionCancelled, match="superseded"):
        other.raise_if_cancelled()


def test_date_helpers():
    assert parse_as_of("2026-10-19") == date(2026, 10, 19)
    assert isinstance(parse_as_of(None), date)
    assert parse_iso_date("2024-09-30 00:00:00") == date(2024, 9, 30)
    assert parse_iso_date("") is None
    assert years_before(date(2024, 2, 29), 3) == date(2021, 2, 28)


def test_generate_request_id_prefix_and_uniqueness():
    first, second = generate_request_id(), generate_request_id()
    assert first.startswith("req-")
    assert first != second


def test_json_line_formatter_emits_stable_fields():
    logger = logging.getLogger("tapwater.test_formatter")
    record = logger.makeRecord(
        logger.name,
        logging.WARNING,
        __file__,
        1,
        "multiple service areas",
        None,
        None,
        extra={"stage": "spatial_resolver", "event": "AMBIGUOUS_SERVICE_AREA", "candidate_count": 2},
    )

    payload = json.loads(JsonLineFormatter().format(record))

    assert payload["stage"] == "spatial_resolver"
    assert payload["event"] == "AMBIGUOUS_SERVICE_AREA"
    assert payload["candidate_count"] == 2
    assert payload["request_id"] is None
    assert payload["message"] == "multiple service areas"


def test_log_event_passes_level_and_fields(caplog):
    logger = logging.getLogger("tapwater.test_log_event")
    with caplog.at_level(logging.INFO, logger="tapwater"):
        log_event(logger, "stage end", stage="geocoder", event="STAGE_END", duration_ms=12)

    (record,) = caplog.records
    assert record.levelno == logging.INFO
    assert record.event == "STAGE_END"
    assert record.duration_ms == 12
