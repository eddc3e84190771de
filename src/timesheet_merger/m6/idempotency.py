from __future__ import annotations

import base64

from timesheet_merger.m3.model import BillingKey, SourceEntry


def fingerprint(entry: SourceEntry, key: BillingKey) -> str:
    """Deterministic idempotency key for one source entry billed to `key`.

    Uses the layout of existing `hashes.json` ledgers, so fingerprints from
    earlier runs keep matching.
    """
    raw = "-".join(
        [
            entry.uuid,
            entry.folder,
            entry.task,
            entry.raw_duration,
            key.order_id,
            key.sub_project_id,
            key.phase_id,
            entry.description,
        ]
    )
    return base64.b64encode(raw.encode()).decode("ascii")
