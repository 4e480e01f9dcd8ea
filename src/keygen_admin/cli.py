#!/usr/bin/env python3
"""
Keygen admin CLI (operator-facing)

Features
- create-policy: pick a product, name the policy after a customer, add metadata,
  pick entitlements, create the policy and attach the entitlements.
- create-license: find a policy (search, exact id, or full list), name the
  license, add metadata, create it and print the license key.

Both commands are interactive and take no arguments; `keygen-create-policy`
and `keygen-create-license` run them directly.

Environment / Config
- KEYGEN_API_URL, KEYGEN_ACCOUNT_ID, KEYGEN_API_TOKEN are required; they are
  read from the environment, then `.env`, then `~/.keygen/admin.toml`.
- KEYGEN_PUBLIC_KEY (optional) turns on response signature verification.
- KEYGEN_TIMEOUT, KEYGEN_MAX_ATTEMPTS, KEYGEN_RETRY_DELAY tune retries.

Exit codes: 0 on success, 1 on any fatal error, 130 on Ctrl-C.
"""

from __future__ import annotations

import argparse
import logging
import sys
import typing as t

from keygen_admin.client import KeygenAdminClient
from keygen_admin.config import Config
from keygen_admin.errors import (
    AdminError,
    ConfigError,
    OutcomeError,
    PaginationLimitError,
    SelectionError,
    SignatureError,
)
from keygen_admin.http import OutcomeKind
from keygen_admin.prompts import ask, ask_required, choose_many, choose_one, collect_metadata
from keygen_admin.resources import (
    attrs,
    build_license_payload,
    build_policy_payload,
    describe_entitlement,
    describe_policy,
    describe_product,
    entitlement_code,
    entitlement_label,
    entitlement_name,
    policy_name,
)

RULE = "=" * 38


def _banner(title: str) -> None:
    print()
    print(RULE)
    print(title)
    print(RULE)


# ------------------------
# CLI Commands
# ------------------------

def cmd_create_policy(client: KeygenAdminClient, _args: argparse.Namespace) -> int:
    print("=== Keygen Policy Creation ===")

    print("\n[step 1] select product")
    print("[info] fetching available products...")
    products = client.list_products()
    if not products:
        raise SelectionError("no products found in your account")
    product = choose_one(products, describe_product, "product")
    product_id = product["id"]
    print(f"[info] selected product ID: {product_id}")

    print("\n[step 2] policy details")
    print("Example format: CUSTOMER NAME Service Contract Test Policy - <entitlement names>")
    customer = ask_required("Customer name: ", "customer name")
    print("You can add custom metadata key-value pairs to this policy")
    print("Examples: 'Customer Code', 'Department', 'Contract Number', etc.")
    metadata = collect_metadata()

    print("\n[step 3] select entitlements")
    print("[info] fetching available entitlements...")
    entitlements = client.list_entitlements()
    if entitlements:
        selected = choose_many(entitlements, describe_entitlement, "entitlement")
        for ent in selected:
            print(f"[info] selected: {entitlement_name(ent)} ({entitlement_code(ent)})")
        if not selected:
            print("[info] no entitlements selected")
    else:
        print("[warning] no entitlements found in your account; policy will be created without entitlements")
        selected = []
    labels = [entitlement_label(e) for e in selected]

    print("\n[step 4] create policy")
    name = policy_name(customer, labels)
    print(f"[info] creating policy: {name}")
    created = client.create_policy(build_policy_payload(name, product_id, metadata))
    policy_id = (created.get("data") or {}).get("id")
    print("[info] policy created successfully")

    if selected and policy_id:
        print("[info] attaching entitlements to policy...")
        outcome = client.attach_entitlements(policy_id, [e["id"] for e in selected])
        if outcome.ok:
            print("[info] entitlements attached successfully")
        else:
            print(f"[warning] policy created but failed to attach entitlements ({outcome.describe()})",
                  file=sys.stderr)
            if outcome.details():
                print("Entitlement attachment error:", file=sys.stderr)
                print(outcome.details(), file=sys.stderr)

    _banner("Policy Creation Complete!")
    print(f"Name: {name}")
    print(f"Product ID: {product_id}")
    print(f"Entitlements: {','.join(labels) if labels else 'None'}")
    print(f"Policy ID: {policy_id or 'unknown'}")
    if metadata:
        print("Metadata: Yes (custom metadata added)")
    return 0


def _select_policy(client: KeygenAdminClient) -> dict:
    print("How would you like to find the policy?")
    print("1) Search by customer name/policy name")
    print("2) Enter exact policy ID")
    print("3) List all policies")
    choice = ask("Enter your choice (1-3): ")

    if choice == "1":
        term = ask("Enter search term (partial name is OK): ")
        print(f"[info] searching for policies containing '{term}'...")
        matches = client.search_policies(term)
        if not matches:
            raise SelectionError(f"no policies found matching '{term}'")
        return choose_one(matches, describe_policy, "policy")
    if choice == "2":
        policy_id = ask_required("Enter exact policy ID: ", "policy ID")
        policy = client.get_policy(policy_id)
        print(describe_policy(policy))
        return policy
    if choice == "3":
        print("[info] fetching all policies...")
        policies = client.list_policies()
        if not policies:
            raise SelectionError("no policies found")
        return choose_one(policies, describe_policy, "policy", auto_single=False)
    raise SelectionError(f"invalid choice: {choice}")


def cmd_create_license(client: KeygenAdminClient, _args: argparse.Namespace) -> int:
    print("=== Keygen License Creation ===")

    policy = _select_policy(client)
    policy_id = policy.get("id")
    print(f"[info] selected policy ID: {policy_id}")

    print("\nLicense details:")
    print("This can be an institution and department name, or any identifier")
    print("Example: 'University of Example - Physics Dept' or 'ACME Corp - Engineering'")
    license_name = ask_required("License name: ", "license name")
    print("You can add custom metadata key-value pairs to this license")
    print("Examples: 'Customer Code', 'Department', 'License Type', etc.")
    metadata = collect_metadata()
    print("[info] this license will inherit all entitlements from the selected policy")

    print("\n[info] creating license...")
    created = client.create_license(build_license_payload(license_name, policy_id, metadata))
    data = created.get("data") or {}
    a = attrs(data)
    key = a.get("key") or "N/A"
    print("[info] license created successfully")
    print(f"ID: {data.get('id')}")
    print(f"Key: {key}")
    if a.get("name"):
        print(f"Name: {a['name']}")
    print(f"Expiry: {a.get('expiry') or 'Calculated from policy'}")

    _banner("License Creation Summary:")
    print(f"Policy ID: {policy_id}")
    print(f"License Name: {license_name}")
    if metadata:
        print("Metadata: Yes (custom metadata added)")
    print("Protected: No")
    print("Entitlements: Inherited from policy")
    print("User: Not assigned")
    print("Group: Not assigned")
    print("\nLICENSE KEY:")
    print(key)
    return 0


COMMANDS: dict[str, t.Callable[[KeygenAdminClient, argparse.Namespace], int]] = {
    "create-policy": cmd_create_policy,
    "create-license": cmd_create_license,
}

# ------------------------
# Argparse
# ------------------------

def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="keygen-admin",
        description="Keygen policy and license administration (interactive)",
    )
    p.add_argument("--env-file", default=".env", help="dotenv file to load (default: ./.env)")
    p.add_argument("-v", "--verbose", action="store_true", help="Log every request attempt")

    sub = p.add_subparsers(dest="cmd", required=True)
    sub.add_parser("create-policy", help="Create a policy and attach entitlements")
    sub.add_parser("create-license", help="Create a license under an existing policy")
    return p


# ------------------------
# Main
# ------------------------

def report(exc: AdminError) -> None:
    if isinstance(exc, ConfigError):
        label = "config"
    elif isinstance(exc, SelectionError):
        label = "selection"
    elif isinstance(exc, SignatureError):
        label = "signature"
    elif isinstance(exc, PaginationLimitError):
        label = "pagination"
    elif isinstance(exc, OutcomeError) and exc.outcome.kind is OutcomeKind.SERVER_ERROR_EXHAUSTED:
        label = "network"
    elif isinstance(exc, OutcomeError):
        label = "api"
    else:
        label = "admin"
    print(f"[error] {label}: {exc}", file=sys.stderr)
    if isinstance(exc, OutcomeError) and exc.outcome.details():
        print("Response:", file=sys.stderr)
        print(exc.outcome.details(), file=sys.stderr)


def main(
    argv: list[str] | None = None,
    client_factory: t.Callable[[Config], KeygenAdminClient] = KeygenAdminClient,
) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="[%(levelname)s] %(message)s",
    )

    try:
        cfg = Config.load(env_file=args.env_file)
        client = client_factory(cfg)
        return COMMANDS[args.cmd](client, args)
    except AdminError as e:
        report(e)
        return 1
    except EOFError:
        print("\n[error] selection: input ended", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print()
        return 130


def create_policy_main() -> int:
    return main(["create-policy"])


def create_license_main() -> int:
    return main(["create-license"])


if __name__ == "__main__":
    raise SystemExit(main())
