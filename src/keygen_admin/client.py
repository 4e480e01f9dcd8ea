from __future__ import annotations

import time
import typing as t
from urllib.parse import urlparse

import requests

from keygen_admin import __version__
from keygen_admin.config import Config
from keygen_admin.errors import ApiError, NetworkError
from keygen_admin.http import (
    Method,
    Outcome,
    OutcomeKind,
    PageAccumulator,
    RequestSender,
)
from keygen_admin.resources import build_entitlements_payload
from keygen_admin.signatures import make_verifier

USER_AGENT = f"keygen-admin/{__version__}"
JSONAPI = "application/vnd.api+json"


def raise_for_outcome(outcome: Outcome, action: str) -> None:
    """Turn a non-success outcome into ApiError or NetworkError."""
    if outcome.ok:
        return
    if outcome.kind is OutcomeKind.SERVER_ERROR_EXHAUSTED:
        raise NetworkError(f"{action} failed, service unavailable ({outcome.describe()})", outcome)
    raise ApiError(f"{action} failed ({outcome.describe()})", outcome)


class KeygenAdminClient:
    """
    Keygen admin operations used by the policy and license scripts.

    Everything goes through one RequestSender rooted at the account URL, so
    every call shares the same retry policy and signature check.
    """

    def __init__(
        self,
        cfg: Config,
        session: requests.Session | None = None,
        sleep: t.Callable[[float], None] = time.sleep,
    ):
        self.cfg = cfg
        self.session = session or requests.Session()
        self.session.headers.update({
            "Accept": JSONAPI,
            "Content-Type": JSONAPI,
            "User-Agent": USER_AGENT,
            "Authorization": f"Bearer {cfg.api_token}",
        })
        verifier = None
        if cfg.public_key:
            host = urlparse(cfg.api_url).netloc or "api.keygen.sh"
            verifier = make_verifier(cfg.public_key, host)
        self.sender = RequestSender(
            self.session, cfg.account_url, retry=cfg.retry, sleep=sleep, verifier=verifier,
        )
        self.pages = PageAccumulator(self.sender)

    # ---- lists ----
    def list_products(self) -> list[dict]:
        return self.pages.collect("/products")

    def list_entitlements(self) -> list[dict]:
        return self.pages.collect("/entitlements")

    def list_policies(self) -> list[dict]:
        return self.pages.collect("/policies")

    def search_policies(self, term: str) -> list[dict]:
        needle = term.lower()
        return [
            p for p in self.list_policies()
            if needle in str((p.get("attributes") or {}).get("name") or "").lower()
        ]

    def get_policy(self, policy_id: str) -> dict:
        outcome = self.sender.send(Method.GET, f"/policies/{policy_id}")
        raise_for_outcome(outcome, f"fetching policy {policy_id}")
        return (outcome.body.get("data") or {}) if isinstance(outcome.body, dict) else {}

    # ---- writes ----
    def create_policy(self, payload: dict) -> dict:
        outcome = self.sender.send(Method.POST, "/policies", body=payload)
        raise_for_outcome(outcome, "policy creation")
        return outcome.body if isinstance(outcome.body, dict) else {}

    def attach_entitlements(self, policy_id: str, entitlement_ids: t.Sequence[str]) -> Outcome:
        """Attach entitlements to a policy; the outcome is returned so callers can treat failure as a warning."""
        return self.sender.send(
            Method.POST,
            f"/policies/{policy_id}/entitlements",
            body=build_entitlements_payload(entitlement_ids),
        )

    def create_license(self, payload: dict) -> dict:
        outcome = self.sender.send(Method.POST, "/licenses", body=payload)
        raise_for_outcome(outcome, "license creation")
        return outcome.body if isinstance(outcome.body, dict) else {}
