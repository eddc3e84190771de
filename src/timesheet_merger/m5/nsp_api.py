from __future__ import annotations

import logging
from dataclasses import dataclass, field

import requests

from timesheet_merger.errors import AuthError, DeletionError, ParseError, SubmissionError
from timesheet_merger.m3.model import BillingEntry, RemotePhase, RemoteProject

DEFAULT_BASE_URL = "https://timesheets-api.neosperience.com"
DEFAULT_REALM = "NEOSPERIENCE"


@dataclass(frozen=True)
class EntryDefaults:
    """Fixed fields sent with every timesheet entry."""

    user_id: str = "18"
    company: str = "NEOSPERIENCE"
    status: str = "DRAFT"
    site_id: str = "SmartW"
    centro_id: str = "Generale"
    # Used when the billing key has no fourth (line item) component.
    line_item_id: str = "328_0"
    trip_hours: float = 0


@dataclass(frozen=True)
class NspConfig:
    username: str
    password: str
    base_url: str = DEFAULT_BASE_URL
    realm: str = DEFAULT_REALM
    defaults: EntryDefaults = field(default_factory=EntryDefaults)
    timeout_s: float = 30

    def login_url(self) -> str:
        return f"{self.base_url}/token/oauth2/{self.realm}"

    def tree_url(self) -> str:
        return f"{self.base_url}/orders/tree"

    def entries_url(self) -> str:
        return f"{self.base_url}/timesheets"

    def entry_url(self, remote_id: str) -> str:
        return f"{self.base_url}/timesheets/{remote_id}"


@dataclass(frozen=True)
class Credentials:
    # The service rejects stale tokens with 401, which clears the cache.
    access_token: str


def build_entry_payload(entry: BillingEntry, defaults: EntryDefaults) -> dict:
    """JSON body for the create endpoint. A new dict on every call."""
    hours = float(entry.duration_hours)
    key = entry.billing_key
    return {
        "date": entry.date.isoformat(),
        "description": entry.description,
        "orderId": key.order_id,
        "idSubPrj": key.sub_project_id,
        "phaseId": key.phase_id,
        "opDeLinenumId": key.line_item_id or defaults.line_item_id,
        "hours": hours,
        "billingHours": hours,
        "tripHours": defaults.trip_hours,
        "userId": defaults.user_id,
        "company": defaults.company,
        "status": defaults.status,
        "siteId": defaults.site_id,
        "centroId": defaults.centro_id,
    }


def _submission_error(resp: requests.Response, payload: dict) -> SubmissionError:
    try:
        info = resp.json()
    except ValueError:
        info = None

    if not isinstance(info, dict):
        return SubmissionError(
            f"timesheet api error {resp.status_code}: {resp.text}",
            status_code=resp.status_code,
            payload=payload,
        )

    status_code = info.get("statusCode", resp.status_code)
    reason = str(info.get("statusReason") or getattr(resp, "reason", "") or "")
    message = str(info.get("message") or "")
    raw_details = info.get("details") or []
    details = [str(d) for d in raw_details] if isinstance(raw_details, list) else [str(raw_details)]
    text = f"{reason} ({status_code}): {message}"
    if details:
        text += f" - {', '.join(details)}"
    return SubmissionError(
        text,
        status_code=status_code if isinstance(status_code, int) else resp.status_code,
        reason=reason,
        details=details,
        payload=payload,
    )


def _parse_phase(obj: object) -> RemotePhase:
    if not isinstance(obj, dict):
        raise ParseError("unexpected phase in project tree: expected an object")
    try:
        phase_id = obj["phaseId"]
        sub_id = obj["idSubPRJ"]
    except KeyError as e:
        raise ParseError(f"project tree phase missing {e.args[0]!r}") from e
    line = obj.get("opDeLinenumId")
    return RemotePhase(
        phase_id=str(phase_id),
        sub_project_id=str(sub_id),
        description=str(obj.get("description") or ""),
        line_item_id=(str(line) if line else None),
    )


def parse_project_tree(data: object) -> list[RemoteProject]:
    if not isinstance(data, list):
        raise ParseError("unexpected project tree: expected a JSON array")

    out: list[RemoteProject] = []
    for p in data:
        if not isinstance(p, dict):
            raise ParseError("unexpected project in project tree: expected an object")
        phases = p.get("phases") or []
        if not isinstance(phases, list):
            raise ParseError(f"project {p.get('id')!r}: phases must be an array")
        if "orderId" not in p:
            raise ParseError(f"project {p.get('id')!r}: missing 'orderId'")
        out.append(
            RemoteProject(
                id=str(p.get("id", "")),
                order_id=str(p["orderId"]),
                description=str(p.get("description") or ""),
                customer_name=(str(p["customerName"]) if p.get("customerName") else None),
                phases=[_parse_phase(ph) for ph in phases],
            )
        )
    return out


class NspClient:
    """Timesheet service client. Keeps the bearer token in memory once logged in."""

    def __init__(self, cfg: NspConfig, *, log: logging.Logger):
        self.cfg = cfg
        self.log = log
        self.credentials: Credentials | None = None

    def login(self) -> Credentials:
        self.log.info("logging in as %s", self.cfg.username)
        try:
            resp = requests.post(
                self.cfg.login_url(),
                data={
                    "username": self.cfg.username,
                    "password": self.cfg.password,
                    "grant_type": "password",
                },
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                timeout=self.cfg.timeout_s,
            )
        except requests.exceptions.RequestException as e:
            raise AuthError(f"couldn't login: {e}") from e

        if resp.status_code >= 400:
            raise AuthError(f"couldn't login: HTTP {resp.status_code}")

        try:
            data = resp.json()
        except ValueError as e:
            raise AuthError("couldn't login: response is not JSON") from e
        if not isinstance(data, dict) or not data.get("access_token"):
            raise AuthError("couldn't login: no access_token in response")

        self.credentials = Credentials(access_token=str(data["access_token"]))
        return self.credentials

    def _headers(self) -> dict[str, str]:
        creds = self.credentials or self.login()
        return {
            "Authorization": f"Bearer {creds.access_token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def _unauthorized(self, what: str) -> AuthError:
        # Drop the token so the next call logs in again.
        self.credentials = None
        return AuthError(f"{what}: not authorized (token expired or revoked)")

    def get_projects(self) -> list[RemoteProject]:
        headers = self._headers()
        try:
            resp = requests.get(self.cfg.tree_url(), headers=headers, timeout=self.cfg.timeout_s)
        except requests.exceptions.RequestException as e:
            raise ParseError(f"cannot fetch project tree: {e}") from e
        if resp.status_code == 401:
            raise self._unauthorized("project tree")
        if resp.status_code >= 400:
            raise ParseError(f"project tree: HTTP {resp.status_code}: {resp.text}")
        try:
            data = resp.json()
        except ValueError as e:
            raise ParseError("project tree: response is not JSON") from e
        return parse_project_tree(data)

    def create_entry(self, entry: BillingEntry) -> str:
        payload = build_entry_payload(entry, self.cfg.defaults)
        headers = self._headers()
        try:
            resp = requests.post(
                self.cfg.entries_url(),
                json=payload,
                headers=headers,
                timeout=self.cfg.timeout_s,
            )
        except requests.exceptions.RequestException as e:
            raise SubmissionError(f"cannot reach timesheet api: {e}", payload=payload) from e

        if resp.status_code == 401:
            raise self._unauthorized("create entry")
        if resp.status_code >= 400:
            raise _submission_error(resp, payload)

        try:
            data = resp.json()
        except ValueError as e:
            raise ParseError("create entry: response is not JSON") from e
        if not isinstance(data, dict) or data.get("id") in (None, ""):
            raise ParseError("create entry: no id in response")
        return str(data["id"])

    def delete_entry(self, remote_id: str) -> None:
        headers = self._headers()
        try:
            resp = requests.delete(
                self.cfg.entry_url(remote_id),
                headers=headers,
                timeout=self.cfg.timeout_s,
            )
        except requests.exceptions.RequestException as e:
            raise DeletionError(f"cannot delete {remote_id}: {e}", remote_id=remote_id) from e

        if resp.status_code == 401:
            self.credentials = None
        if resp.status_code >= 400:
            raise DeletionError(
                f"cannot delete {remote_id}: HTTP {resp.status_code}: {resp.text}",
                remote_id=remote_id,
                status_code=resp.status_code,
            )
