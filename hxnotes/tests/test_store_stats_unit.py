import sys

from hxnotes.internal_core.contracts import Patient, StructuredSummary, SummaryRecord
from hxnotes.records.persistence import JsonFileKeyValueBackend, KeyValuePatientPersistence
from hxnotes.scripts import store_stats


def _patients() -> list[Patient]:
    update = SummaryRecord(summary=StructuredSummary(acute_issues=["Fever"], key_changes=["New fever"]), timestamp="t2")
    create = SummaryRecord(summary=StructuredSummary(acute_issues=["Cough"]), timestamp="t1")
    return [
        Patient(id="2", name="John Smith"),
        Patient(id="1", name="Jane Doe", summaries=[update, create]),
    ]


def test_collect_stats_counts_records_and_updates() -> None:
    stats = store_stats.collect_stats(_patients())
    assert stats == {
        "patients": 2,
        "records": 2,
        "update_records": 1,
        "max_history": 2,
        "empty_patients": 1,
        "latest_timestamp": "t2",
    }


def test_main_prints_totals_for_json_store(monkeypatch, tmp_path, capsys) -> None:
    KeyValuePatientPersistence(JsonFileKeyValueBackend(tmp_path)).save(_patients())
    monkeypatch.setattr(sys, "argv", ["store_stats", "--data-dir", str(tmp_path), "--list-patients"])

    store_stats.main()

    out = capsys.readouterr().out
    assert "patients: 2" in out
    assert "update_records: 1" in out
    assert "1\trecords=2\tnewest=t2" in out
