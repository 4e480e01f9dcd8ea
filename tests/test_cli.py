import pytest

from keygen_admin.cli import main
from keygen_admin.client import KeygenAdminClient

from conftest import FakeResponse, FakeSession, SleepRecorder, items

ACCOUNT = "https://api.keygen.sh/v1/accounts/acct"

PRODUCT = {"id": "prod-1", "type": "products", "attributes": {"name": "Analyzer"}}
ENTITLEMENTS = [
    {"id": "ent-1", "type": "entitlements", "attributes": {"name": "Professional", "code": "PRO"}},
    {"id": "ent-2", "type": "entitlements", "attributes": {"name": "Second"}},
]
POLICIES = [
    {"id": "pol-1", "type": "policies", "attributes": {"name": "ACME Service Contract Test Policy",
                                                        "duration": 31536000, "maxMachines": 500}},
    {"id": "pol-2", "type": "policies", "attributes": {"name": "Globex Service Contract Test Policy",
                                                        "duration": None, "maxMachines": 10}},
]
LICENSE = {"data": {"id": "lic-1", "type": "licenses",
                    "attributes": {"name": "Physics Dept", "key": "AAAA-BBBB-CCCC", "expiry": None}}}


class Api:
    """Routes fake requests by method and account-relative path."""

    def __init__(self, routes):
        self.routes = routes

    def __call__(self, call):
        path = call.url[len(ACCOUNT):]
        result = self.routes[(call.method, path)]
        return result(call) if callable(result) else result


@pytest.fixture
def env(monkeypatch, tmp_path):
    monkeypatch.setenv("KEYGEN_API_URL", "https://api.keygen.sh")
    monkeypatch.setenv("KEYGEN_ACCOUNT_ID", "acct")
    monkeypatch.setenv("KEYGEN_API_TOKEN", "tok")
    monkeypatch.setenv("KEYGEN_ADMIN_CONFIG", str(tmp_path / "none.toml"))
    monkeypatch.delenv("KEYGEN_PUBLIC_KEY", raising=False)
    return ["--env-file", str(tmp_path / "none.env")]


@pytest.fixture
def answers(monkeypatch):
    def feed(*lines):
        it = iter(lines)
        monkeypatch.setattr("builtins.input", lambda prompt="": next(it))
    return feed


def run(argv, session):
    sleep = SleepRecorder()
    code = main(argv, client_factory=lambda cfg: KeygenAdminClient(cfg, session=session, sleep=sleep))
    return code, sleep


def test_client_sets_jsonapi_headers(cfg):
    session = FakeSession()
    KeygenAdminClient(cfg, session=session)
    assert session.headers["Authorization"] == "Bearer tok"
    assert session.headers["Accept"] == "application/vnd.api+json"
    assert session.headers["Content-Type"] == "application/vnd.api+json"


def test_search_policies_is_case_insensitive(cfg):
    session = FakeSession(handler=Api({("GET", "/policies"): FakeResponse(200, {"data": POLICIES})}))
    client = KeygenAdminClient(cfg, session=session)
    assert [p["id"] for p in client.search_policies("globex")] == ["pol-2"]


def test_create_policy(env, answers, capsys):
    created = []

    def create(call):
        created.append(call.body)
        return FakeResponse(201, {"data": {"id": "pol-9", "type": "policies"}})

    session = FakeSession(handler=Api({
        ("GET", "/products"): FakeResponse(200, {"data": [PRODUCT]}),
        ("GET", "/entitlements"): FakeResponse(200, {"data": ENTITLEMENTS}),
        ("POST", "/policies"): create,
        ("POST", "/policies/pol-9/entitlements"): FakeResponse(200, {"data": []}),
    }))
    answers("ACME", "Customer code", "C-1", "", "1 2")

    code, _ = run([*env, "create-policy"], session)

    assert code == 0
    attrs = created[0]["data"]["attributes"]
    assert attrs["name"] == "ACME Service Contract Test Policy - PRO,Second"
    assert attrs["metadata"] == {"Customer code": "C-1"}
    assert created[0]["data"]["relationships"]["product"]["data"]["id"] == "prod-1"
    attach = session.calls[-1]
    assert attach.body == {"data": [{"type": "entitlements", "id": "ent-1"},
                                    {"type": "entitlements", "id": "ent-2"}]}
    out = capsys.readouterr().out
    assert "Policy ID: pol-9" in out
    assert "Entitlements: PRO,Second" in out
    assert "entitlements attached successfully" in out


def test_create_policy_without_entitlements(env, answers, capsys):
    session = FakeSession(handler=Api({
        ("GET", "/products"): FakeResponse(200, {"data": [PRODUCT]}),
        ("GET", "/entitlements"): FakeResponse(200, {"data": []}),
        ("POST", "/policies"): FakeResponse(201, {"data": {"id": "pol-9"}}),
    }))
    answers("ACME", "")

    code, _ = run([*env, "create-policy"], session)

    assert code == 0
    assert [c.method for c in session.calls] == ["GET", "GET", "POST"]
    assert "Entitlements: None" in capsys.readouterr().out


def test_entitlement_attach_failure_is_a_warning(env, answers, capsys):
    session = FakeSession(handler=Api({
        ("GET", "/products"): FakeResponse(200, {"data": [PRODUCT]}),
        ("GET", "/entitlements"): FakeResponse(200, {"data": ENTITLEMENTS}),
        ("POST", "/policies"): FakeResponse(201, {"data": {"id": "pol-9"}}),
        ("POST", "/policies/pol-9/entitlements"): FakeResponse(422, {"errors": [{"title": "bad"}]}),
    }))
    answers("ACME", "", "1")

    code, _ = run([*env, "create-policy"], session)

    assert code == 0
    err = capsys.readouterr().err
    assert "failed to attach entitlements (HTTP 422" in err
    assert "Entitlement attachment error:" in err
    assert '"title": "bad"' in err


def test_create_policy_with_no_products(env, answers, capsys):
    session = FakeSession(handler=Api({("GET", "/products"): FakeResponse(200, {"data": []})}))
    answers()
    code, _ = run([*env, "create-policy"], session)
    assert code == 1
    assert "no products found" in capsys.readouterr().err


def test_create_policy_rejected(env, answers, capsys):
    session = FakeSession(handler=Api({
        ("GET", "/products"): FakeResponse(200, {"data": [PRODUCT]}),
        ("GET", "/entitlements"): FakeResponse(200, {"data": []}),
        ("POST", "/policies"): FakeResponse(422, {"errors": [{"title": "Unprocessable"}]}),
    }))
    answers("ACME", "")
    code, sleep = run([*env, "create-policy"], session)
    assert code == 1
    assert sleep.delays == []
    assert "[error] api: policy creation failed" in capsys.readouterr().err


def test_service_outage_is_reported_as_network(env, answers, capsys):
    session = FakeSession(handler=Api({("GET", "/products"): FakeResponse(503, text="down")}))
    answers()
    code, sleep = run([*env, "create-policy"], session)
    assert code == 1
    assert len(session.calls) == 3
    assert sleep.delays == [2.0, 2.0]
    assert "[error] network:" in capsys.readouterr().err


def test_create_license_by_search(env, answers, capsys):
    created = []

    def create(call):
        created.append(call.body)
        return FakeResponse(201, LICENSE)

    session = FakeSession(handler=Api({
        ("GET", "/policies"): FakeResponse(200, {"data": POLICIES}),
        ("POST", "/licenses"): create,
    }))
    answers("1", "acme", "Physics Dept", "Department", "Physics", "")

    code, _ = run([*env, "create-license"], session)

    assert code == 0
    data = created[0]["data"]
    assert data["relationships"]["policy"]["data"]["id"] == "pol-1"
    assert data["attributes"] == {"name": "Physics Dept", "protected": False,
                                  "metadata": {"Department": "Physics"}}
    out = capsys.readouterr().out
    assert "AAAA-BBBB-CCCC" in out
    assert "Expiry: Calculated from policy" in out


def test_create_license_from_full_list_pages_through(env, answers):
    page_one = items(100)

    def policies(call):
        if call.params["page[number]"] == 1:
            return FakeResponse(200, {"data": page_one})
        return FakeResponse(200, {"data": POLICIES})

    session = FakeSession(handler=Api({
        ("GET", "/policies"): policies,
        ("POST", "/licenses"): FakeResponse(201, LICENSE),
    }))
    answers("3", "102", "Lab", "")

    code, _ = run([*env, "create-license"], session)

    assert code == 0
    assert session.calls[-1].body["data"]["relationships"]["policy"]["data"]["id"] == "pol-2"


def test_create_license_by_id(env, answers):
    session = FakeSession(handler=Api({
        ("GET", "/policies/pol-2"): FakeResponse(200, {"data": POLICIES[1]}),
        ("POST", "/licenses"): FakeResponse(201, LICENSE),
    }))
    answers("2", "pol-2", "Lab", "")
    code, _ = run([*env, "create-license"], session)
    assert code == 0


def test_create_license_unknown_policy_id(env, answers, capsys):
    session = FakeSession(handler=Api({
        ("GET", "/policies/nope"): FakeResponse(404, {"errors": [{"title": "Not found"}]}),
    }))
    answers("2", "nope")
    code, _ = run([*env, "create-license"], session)
    assert code == 1
    assert len(session.calls) == 1
    assert "[error] api:" in capsys.readouterr().err


def test_create_license_no_search_match(env, answers, capsys):
    session = FakeSession(handler=Api({("GET", "/policies"): FakeResponse(200, {"data": POLICIES})}))
    answers("1", "initech")
    code, _ = run([*env, "create-license"], session)
    assert code == 1
    assert "no policies found matching 'initech'" in capsys.readouterr().err


def test_invalid_menu_choice(env, answers):
    answers("7")
    code, _ = run([*env, "create-license"], FakeSession())
    assert code == 1


def test_missing_config_fails_before_any_request(monkeypatch, tmp_path, capsys):
    for key in ("KEYGEN_API_URL", "KEYGEN_ACCOUNT_ID", "KEYGEN_API_TOKEN"):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("KEYGEN_ADMIN_CONFIG", str(tmp_path / "none.toml"))
    session = FakeSession()
    code, _ = run(["--env-file", str(tmp_path / "none.env"), "create-policy"], session)
    assert code == 1
    assert session.calls == []
    assert "[error] config:" in capsys.readouterr().err


def test_rejected_create_prints_every_error(env, answers, capsys):
    errors = {"errors": [
        {"title": "Unprocessable resource", "detail": "must be greater than 0",
         "source": {"pointer": "/data/attributes/maxMachines"}},
        {"title": "Unprocessable resource", "detail": "name has already been taken",
         "source": {"pointer": "/data/attributes/name"}},
    ]}
    session = FakeSession(handler=Api({
        ("GET", "/products"): FakeResponse(200, {"data": [PRODUCT]}),
        ("GET", "/entitlements"): FakeResponse(200, {"data": []}),
        ("POST", "/policies"): FakeResponse(422, errors),
    }))
    answers("ACME", "")

    code, _ = run([*env, "create-policy"], session)

    assert code == 1
    err = capsys.readouterr().err
    assert "must be greater than 0" in err
    assert "name has already been taken" in err


def test_redirect_is_reported_as_api_error(env, answers, capsys):
    session = FakeSession(handler=Api({
        ("GET", "/policies"): FakeResponse(302, text="", headers={"Location": "/elsewhere"}),
    }))
    answers("3")

    code, sleep = run([*env, "create-license"], session)

    assert code == 1
    assert len(session.calls) == 1
    assert sleep.delays == []
    err = capsys.readouterr().err
    assert "[error] api:" in err
    assert "HTTP 302" in err
    assert "null" not in err
