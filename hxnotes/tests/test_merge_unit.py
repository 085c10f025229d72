import pytest

from hxnotes.internal_core.contracts import StructuredSummary, SummaryRecord
from hxnotes.summary.merge import SummaryValidationError, parse_summary_payload
from hxnotes.summary.requests import build_summary_request


def _create_request():
    return build_summary_request("cough", [], None)


def _update_request():
    latest = SummaryRecord(summary=StructuredSummary(acute_issues=["Cough"]), timestamp="t1")
    return build_summary_request("fever", [], latest)


def _base_payload() -> dict:
    return {
        "Acute Issues": ["Cough"],
        "Pending Tasks and action Plan": ["Chest x-ray"],
        "Past medical history": ["Asthma"],
    }


def test_create_payload_parses_from_json_text() -> None:
    summary = parse_summary_payload(
        '{"Acute Issues": ["Cough"], "Pending Tasks and action Plan": [], "Past medical history": []}',
        _create_request(),
    )
    assert summary.acute_issues == ["Cough"]
    assert summary.key_changes is None


def test_create_payload_drops_stray_key_changes() -> None:
    payload = {**_base_payload(), "Key Changes": ["ignored"], "Extra": "ignored"}
    summary = parse_summary_payload(payload, _create_request())
    assert summary.is_update is False
    assert "Key Changes" not in summary.to_payload()


def test_update_payload_requires_key_changes() -> None:
    with pytest.raises(SummaryValidationError, match="Key Changes"):
        parse_summary_payload(_base_payload(), _update_request())

    summary = parse_summary_payload({**_base_payload(), "Key Changes": ["New fever"]}, _update_request())
    assert summary.key_changes == ["New fever"]


def test_missing_past_medical_history_is_rejected() -> None:
    payload = _base_payload()
    del payload["Past medical history"]
    with pytest.raises(SummaryValidationError, match="Past medical history"):
        parse_summary_payload(payload, _create_request())


@pytest.mark.parametrize(
    "payload",
    [
        "not json",
        "[1, 2]",
        {"Acute Issues": "Cough", "Pending Tasks and action Plan": [], "Past medical history": []},
        {"Acute Issues": [1], "Pending Tasks and action Plan": [], "Past medical history": []},
    ],
)
def test_malformed_payloads_are_rejected(payload) -> None:
    with pytest.raises(SummaryValidationError):
        parse_summary_payload(payload, _create_request())
