from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest
import requests

import timesheet_merger.m5.nsp_api as api
from timesheet_merger.errors import AuthError, DeletionError, ParseError, SubmissionError
from timesheet_merger.m3.model import BillingEntry, BillingKey
from timesheet_merger.m5.nsp_api import NspClient, NspConfig


class Resp:
    def __init__(self, status_code: int = 200, data=None, text: str = "ok"):
        self.status_code = status_code
        self._data = data
        self.text = text
        self.reason = "Bad Request" if status_code == 400 else "OK"

    def json(self):
        if self._data is None:
            raise ValueError("no json")
        return self._data


TOKEN = {"token_type": "bearer", "access_token": "tok", "expires_in": 3600}

ENTRY = BillingEntry(
    date=date(2024, 1, 5),
    duration_hours=Decimal("2.5"),
    description="ProjA - Dev - [ref.100200]",
    billing_key=BillingKey.parse("ORD1/SUB2/PH3"),
)


@pytest.fixture
def client(log) -> NspClient:
    cfg = NspConfig(username="me", password="pw", base_url="https://ts.test")
    return NspClient(cfg, log=log.logger)


def _fake_post(calls: list[dict], create_resp: Resp):
    def fake_post(url, json=None, data=None, headers=None, timeout=None):
        calls.append({"url": url, "json": json, "data": data, "headers": headers})
        if url.endswith("/token/oauth2/NEOSPERIENCE"):
            return Resp(200, TOKEN)
        return create_resp

    return fake_post


def test_create_entry_logs_in_once_and_posts_payload(monkeypatch, client) -> None:
    calls: list[dict] = []
    monkeypatch.setattr(api.requests, "post", _fake_post(calls, Resp(200, {"id": 987})))

    assert client.create_entry(ENTRY) == "987"
    assert client.create_entry(ENTRY) == "987"

    logins = [c for c in calls if "oauth2" in c["url"]]
    assert len(logins) == 1
    assert logins[0]["data"]["grant_type"] == "password"

    create = calls[1]
    assert create["url"] == "https://ts.test/timesheets"
    assert create["headers"]["Authorization"] == "Bearer tok"
    body = create["json"]
    assert body["date"] == "2024-01-05"
    assert body["hours"] == 2.5 and body["billingHours"] == 2.5
    assert (body["orderId"], body["idSubPrj"], body["phaseId"]) == ("ORD1", "SUB2", "PH3")
    assert body["opDeLinenumId"] == "328_0"
    assert body["status"] == "DRAFT"


def test_payload_uses_line_item_and_is_never_shared() -> None:
    cfg = NspConfig(username="u", password="p")
    with_line = BillingEntry(
        date=date(2024, 2, 1),
        duration_hours=Decimal("1"),
        description="x",
        billing_key=BillingKey.parse("O/S/P/L9"),
    )
    a = api.build_entry_payload(with_line, cfg.defaults)
    b = api.build_entry_payload(ENTRY, cfg.defaults)

    assert a["opDeLinenumId"] == "L9"
    assert b["opDeLinenumId"] == "328_0"
    assert a is not b
    assert b["date"] == "2024-01-05"


def test_create_entry_rejection_carries_remote_error(monkeypatch, client) -> None:
    err = {
        "statusCode": 400,
        "statusReason": "Bad Request",
        "message": "invalid entry",
        "details": ["phase closed", "hours exceed"],
    }
    monkeypatch.setattr(api.requests, "post", _fake_post([], Resp(400, err)))

    with pytest.raises(SubmissionError) as exc:
        client.create_entry(ENTRY)

    e = exc.value
    assert e.status_code == 400
    assert e.reason == "Bad Request"
    assert e.details == ["phase closed", "hours exceed"]
    assert e.payload is not None and e.payload["orderId"] == "ORD1"
    assert str(e) == "Bad Request (400): invalid entry - phase closed, hours exceed"


def test_create_entry_unauthorized_drops_token(monkeypatch, client) -> None:
    monkeypatch.setattr(api.requests, "post", _fake_post([], Resp(401, text="expired")))

    with pytest.raises(AuthError):
        client.create_entry(ENTRY)
    assert client.credentials is None


def test_create_entry_without_id_is_parse_error(monkeypatch, client) -> None:
    monkeypatch.setattr(api.requests, "post", _fake_post([], Resp(200, {"ok": True})))
    with pytest.raises(ParseError):
        client.create_entry(ENTRY)


def test_login_failure(monkeypatch, client) -> None:
    monkeypatch.setattr(api.requests, "post", lambda *a, **k: Resp(400, {"error": "invalid_grant"}))
    with pytest.raises(AuthError, match="couldn't login"):
        client.login()

    def boom(*a, **k):
        raise requests.exceptions.ConnectionError("down")

    monkeypatch.setattr(api.requests, "post", boom)
    with pytest.raises(AuthError):
        client.login()


def test_delete_entry(monkeypatch, client) -> None:
    monkeypatch.setattr(api.requests, "post", _fake_post([], Resp(200, {})))
    urls: list[str] = []

    def fake_delete(url, headers=None, timeout=None):
        urls.append(url)
        return Resp(404, text="gone") if url.endswith("/missing") else Resp(200, {})

    monkeypatch.setattr(api.requests, "delete", fake_delete)

    client.delete_entry("abc")
    with pytest.raises(DeletionError) as exc:
        client.delete_entry("missing")
    assert exc.value.remote_id == "missing"
    assert urls == ["https://ts.test/timesheets/abc", "https://ts.test/timesheets/missing"]


def test_get_projects_parses_tree(monkeypatch, client) -> None:
    tree = [
        {
            "id": "p1",
            "orderId": "ORD1",
            "description": "Acme",
            "customerName": "Acme Inc",
            "phases": [
                {"phaseId": "PH3", "idSubPRJ": "SUB2", "description": "Dev"},
                {"phaseId": "PH4", "idSubPRJ": "SUB2", "description": "QA", "opDeLinenumId": "7"},
            ],
        }
    ]
    monkeypatch.setattr(api.requests, "post", _fake_post([], Resp(200, {})))
    monkeypatch.setattr(api.requests, "get", lambda *a, **k: Resp(200, tree))

    [p] = client.get_projects()
    assert p.order_id == "ORD1"
    assert {k: str(v) for k, v in p.billing_keys().items()} == {
        "Acme/Dev": "ORD1/SUB2/PH3",
        "Acme/QA": "ORD1/SUB2/PH4/7",
    }


@pytest.mark.parametrize(
    "tree",
    [
        {"not": "a list"},
        ["nope"],
        [{"id": "p1", "orderId": "O", "phases": [{"description": "no ids"}]}],
        [{"id": "p1", "phases": []}],
    ],
)
def test_get_projects_rejects_unexpected_shape(monkeypatch, client, tree) -> None:
    monkeypatch.setattr(api.requests, "post", _fake_post([], Resp(200, {})))
    monkeypatch.setattr(api.requests, "get", lambda *a, **k: Resp(200, tree))
    with pytest.raises(ParseError):
        client.get_projects()
