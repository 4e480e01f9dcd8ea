"""JSON:API request bodies and display helpers for policies, licenses and entitlements."""

from __future__ import annotations

import typing as t

SECONDS_PER_DAY = 86400

POLICY_DEFAULTS: dict[str, t.Any] = {
    "duration": 365 * SECONDS_PER_DAY,
    "authenticationStrategy": "LICENSE",
    "expirationStrategy": "RESTRICT_ACCESS",
    "expirationBasis": "FROM_CREATION",
    "renewalBasis": "FROM_EXPIRY",
    "transferStrategy": "KEEP_EXPIRY",
    "machineUniquenessStrategy": "UNIQUE_PER_LICENSE",
    "machineMatchingStrategy": "MATCH_ANY",
    "maxMachines": 500,
    "maxProcesses": None,
    "maxCores": None,
    "floating": True,
    "strict": True,
    "machineLeasingStrategy": "PER_LICENSE",
    "processLeasingStrategy": "PER_MACHINE",
    "overageStrategy": "NO_OVERAGE",
    "componentUniquenessStrategy": "UNIQUE_PER_MACHINE",
    "componentMatchingStrategy": "MATCH_ANY",
    "heartbeatCullStrategy": "DEACTIVATE_DEAD",
    "heartbeatResurrectionStrategy": "NO_REVIVE",
    "heartbeatBasis": "FROM_FIRST_PING",
    "heartbeatDuration": None,
    "requireHeartbeat": False,
}

POLICY_SUFFIX = "Service Contract Test Policy"
CUSTOMER_CODE_KEY = "Customer code"


def attrs(item: t.Any) -> dict[str, t.Any]:
    return (item.get("attributes") or {}) if isinstance(item, dict) else {}


def policy_name(customer: str, entitlement_labels: t.Sequence[str] = ()) -> str:
    name = f"{customer} {POLICY_SUFFIX}"
    if entitlement_labels:
        name += " - " + ",".join(entitlement_labels)
    return name


def _relationship(kind: str, rel_id: str) -> dict:
    return {"data": {"type": kind, "id": rel_id}}


def build_policy_payload(name: str, product_id: str, metadata: t.Mapping[str, str] | None = None) -> dict:
    attributes: dict[str, t.Any] = {"name": name, **POLICY_DEFAULTS}
    if metadata:
        attributes["metadata"] = dict(metadata)
    return {
        "data": {
            "type": "policies",
            "attributes": attributes,
            "relationships": {"product": _relationship("products", product_id)},
        }
    }


def build_entitlements_payload(entitlement_ids: t.Iterable[str]) -> dict:
    return {"data": [{"type": "entitlements", "id": eid} for eid in entitlement_ids]}


def build_license_payload(name: str, policy_id: str, metadata: t.Mapping[str, str] | None = None) -> dict:
    attributes: dict[str, t.Any] = {"name": name, "protected": False}
    if metadata:
        attributes["metadata"] = dict(metadata)
    return {
        "data": {
            "type": "licenses",
            "attributes": attributes,
            "relationships": {"policy": _relationship("policies", policy_id)},
        }
    }


# ----------------------
# Display
# ----------------------

def product_name(item: dict) -> str:
    return attrs(item).get("name") or "Unnamed Product"


def entitlement_name(item: dict) -> str:
    return attrs(item).get("name") or "Unnamed Entitlement"


def entitlement_code(item: dict) -> str:
    return attrs(item).get("code") or "N/A"


def entitlement_label(item: dict) -> str:
    """Label used in policy names: the code when there is one, else the name."""
    code = entitlement_code(item)
    return code if code != "N/A" else entitlement_name(item)


def duration_days(seconds: t.Any) -> int | str:
    if not seconds:
        return "Unlimited"
    return int(seconds) // SECONDS_PER_DAY


def describe_product(item: dict) -> str:
    return f"{product_name(item)}\n   ID: {item.get('id')}"


def describe_entitlement(item: dict) -> str:
    return f"{entitlement_name(item)} (Code: {entitlement_code(item)})\n   ID: {item.get('id')}"


def describe_policy(item: dict) -> str:
    a = attrs(item)
    metadata = a.get("metadata") or {}
    return "\n".join([
        a.get("name") or "Unnamed",
        f"   ID: {item.get('id')}",
        f"   Customer Code: {metadata.get(CUSTOMER_CODE_KEY, 'N/A')}",
        f"   Duration: {duration_days(a.get('duration'))} days, Max Machines: {a.get('maxMachines')}",
    ])
