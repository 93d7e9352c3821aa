"""Contract tests for the safety service.

Validates that Pydantic models serialize to match OpenAPI schema definitions.
These tests do NOT require live services - they validate data shapes only.
"""

import pathlib
from datetime import datetime, timezone

import yaml

from src.generation.models import ErrorKind
from src.pipeline.models import ErrorResponse, GenerateResponse, HealthResponse
from src.policy.models import MEETING_TYPES, Severity, Violation, ViolationType
from src.sanitization import FieldType, sanitize_input
from src.violations.models import IdentityKind, RateLimitDecision, ViolationRecord

CONTRACT_PATH = pathlib.Path(__file__).resolve().parents[2] / "contracts" / "safety-openapi.yaml"


def load_safety_schema():
    """Load the safety service OpenAPI contract schemas."""
    contract = yaml.safe_load(CONTRACT_PATH.read_text())
    return contract["components"]["schemas"]


def assert_required_present(schema_name, payload):
    required = set(load_safety_schema()[schema_name].get("required", []))
    missing = required - set(payload)
    assert not missing, f"{schema_name} is missing required fields: {sorted(missing)}"


def assert_no_unknown_fields(schema_name, payload):
    declared = set(load_safety_schema()[schema_name].get("properties", {}))
    unknown = set(payload) - declared
    assert not unknown, f"{schema_name} has undeclared fields: {sorted(unknown)}"


def make_record():
    now = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
    return ViolationRecord(
        record_id="viol_0123456789abcdef",
        identity_kind=IdentityKind.USER,
        identity_value="member-1",
        type=ViolationType.SPAM,
        severity=Severity.MEDIUM,
        description="Spam-like content detected",
        detected_pattern="!!!!",
        user_input="Great talk!!!!",
        action="questionnaire_validation",
        endpoint="/generate",
        user_id="member-1",
        violation_count=2,
        last_violation_at=now,
        created_at=now,
    )


# =============================================================================
# Enumerations
# =============================================================================


def test_enum_values_match_contract():
    schemas = load_safety_schema()

    assert schemas["FieldType"]["enum"] == [f.value for f in FieldType]
    assert schemas["ViolationType"]["enum"] == [t.value for t in ViolationType]
    assert schemas["Severity"]["enum"] == [s.value for s in Severity]
    assert schemas["IdentityKind"]["enum"] == [k.value for k in IdentityKind]
    assert schemas["ErrorKind"]["enum"] == [k.value for k in ErrorKind]
    assert tuple(schemas["Questionnaire"]["properties"]["meeting_type"]["enum"]) == MEETING_TYPES


# =============================================================================
# Payload shapes
# =============================================================================


def test_sanitization_result_matches_schema():
    payload = sanitize_input("<script>x</script>Faith", FieldType.TOPIC).model_dump(mode="json")

    assert_required_present("SanitizationResult", payload)
    assert_no_unknown_fields("SanitizationResult", payload)


def test_violation_to_dict_matches_schema():
    payload = Violation(
        type=ViolationType.MANIPULATION_ATTEMPT,
        severity=Severity.CRITICAL,
        description="Attempt to manipulate AI behavior detected",
        detected_pattern="developer mode",
        category="privileged_mode",
    ).to_dict()

    assert_required_present("Violation", payload)
    assert_no_unknown_fields("Violation", payload)
    datetime.fromisoformat(payload["timestamp"])


def test_violation_record_round_trips_through_to_dict():
    record = make_record()
    payload = record.to_dict()

    assert_required_present("ViolationRecord", payload)
    assert_no_unknown_fields("ViolationRecord", payload)
    assert payload["created_at"] == "2024-06-01T12:00:00.000000+00:00"
    assert ViolationRecord.from_dict(payload) == record


def test_rate_limit_decision_matches_schema():
    blocked = RateLimitDecision(
        is_blocked=True,
        violation_count=3,
        block_duration_minutes=240,
        next_allowed_time=datetime(2024, 6, 1, 16, 0, tzinfo=timezone.utc),
        severity=Severity.HIGH,
    ).model_dump(mode="json")

    assert_required_present("RateLimitDecision", blocked)
    assert_no_unknown_fields("RateLimitDecision", blocked)
    assert RateLimitDecision.allow().model_dump()["is_blocked"] is False


def test_http_bodies_match_schema():
    assert_required_present("GenerateResponse", GenerateResponse(text="Amen.").model_dump(mode="json"))
    assert_required_present(
        "HealthResponse",
        HealthResponse(status="healthy", version="1.0.0", violation_store="memory").model_dump(mode="json"),
    )
    error = ErrorResponse(error="rate_limited", message="Rate limit exceeded.").model_dump(mode="json")
    assert_required_present("ErrorResponse", error)
    assert_no_unknown_fields("ErrorResponse", error)
