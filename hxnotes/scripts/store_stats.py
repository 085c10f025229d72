from __future__ import annotations

import argparse
from pathlib import Path
from typing import Any

from hxnotes.internal_core.contracts import Patient
from hxnotes.records.persistence import (
    JsonFileKeyValueBackend,
    KeyValuePatientPersistence,
    PersistenceError,
)


def collect_stats(patients: list[Patient]) -> dict[str, Any]:
    counts = [len(p.summaries) for p in patients]
    updates = sum(1 for p in patients for r in p.summaries if r.summary.is_update)
    latest = max((r.timestamp for p in patients for r in p.summaries), default=None)
    return {
        "patients": len(patients),
        "records": sum(counts),
        "update_records": updates,
        "max_history": max(counts, default=0),
        "empty_patients": sum(1 for c in counts if c == 0),
        "latest_timestamp": latest,
    }


def main() -> None:
    parser = argparse.ArgumentParser(description="Summarize an hxnotes JSON patient store")
    parser.add_argument(
        "--data-dir",
        default="./data",
        help="Directory holding the store files (default: ./data)",
    )
    parser.add_argument(
        "--key",
        default="patientData",
        help="Storage key of the patient blob (default: patientData)",
    )
    parser.add_argument(
        "--list-patients",
        action="store_true",
        help="Print one line per patient in addition to the totals.",
    )
    args = parser.parse_args()

    data_dir = Path(args.data_dir).expanduser()
    if not data_dir.exists():
        raise SystemExit(f"data directory not found: {data_dir}")

    persistence = KeyValuePatientPersistence(JsonFileKeyValueBackend(data_dir), key=args.key)
    try:
        patients = persistence.load()
    except PersistenceError as exc:
        raise SystemExit(f"could not read store: {exc}") from exc

    stats = collect_stats(patients)
    print(f"data_dir: {data_dir}")
    print(f"patients: {stats['patients']}")
    print(f"records: {stats['records']}")
    print(f"update_records: {stats['update_records']}")
    print(f"max_history: {stats['max_history']}")
    print(f"empty_patients: {stats['empty_patients']}")
    print(f"latest_timestamp: {stats['latest_timestamp'] or 'n/a'}")

    if args.list_patients:
        for patient in patients:
            newest = patient.summaries[0].timestamp if patient.summaries else "n/a"
            print(f"{patient.id}\trecords={len(patient.summaries)}\tnewest={newest}")


if __name__ == "__main__":
    main()
