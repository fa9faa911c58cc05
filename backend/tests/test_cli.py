from typing import Dict

import pytest
from fastapi.testclient import TestClient

from icc_checker import cli


@pytest.fixture
def cli_session(test_app: Dict[str, object], monkeypatch: pytest.MonkeyPatch) -> TestClient:
    monkeypatch.setattr(cli, "SessionLocal", test_app["session_factory"])
    return test_app["client"]  # type: ignore[return-value]


def test_bootstrap_admin_creates_then_promotes(cli_session: TestClient, make_user, capsys) -> None:
    make_user("clerk@example.com", "clerkpass")

    cli.main(["bootstrap-admin", "--email", "Boss@Example.com", "--password", "bosspass1"])
    cli.main(["bootstrap-admin", "--email", "clerk@example.com", "--password", "newpass12"])

    out = capsys.readouterr().out
    assert "Admin created: boss@example.com" in out
    assert "Admin promoted: clerk@example.com" in out
    res = cli_session.post("/api/v1/auth/login", json={"email": "clerk@example.com", "password": "newpass12"})
    assert res.status_code == 200


def test_bootstrap_admin_rejects_an_invalid_email(cli_session: TestClient) -> None:
    with pytest.raises(SystemExit):
        cli.main(["bootstrap-admin", "--email", "nobody", "--password", "whatever1"])


def test_add_store_and_seed_checklist(cli_session: TestClient, capsys) -> None:
    cli.main(["add-store", "--name", "Acme", "--code", "1234"])
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["add-store", "--name", "Acme", "--code", "9"])
    assert "already exists" in str(excinfo.value)

    cli.main(["seed-checklist"])

    out = capsys.readouterr().out
    assert "Store created: Acme" in out
    assert "Checklist items created: 0" in out
    assert [store["name"] for store in cli_session.get("/api/v1/stores").json()] == ["Acme"]
