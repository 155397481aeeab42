from unittest.mock import patch

import pytest

import webapp
from core.errors import ConfigurationError, LoadError
from core.models import SyncStat


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setattr("utils.config.load_dotenv", lambda: None)
    monkeypatch.setenv("SCIM_DESTRUCTIVE", "1")
    webapp.app.config["TESTING"] = True
    return webapp.app.test_client()


def test_sync_returns_statistics_as_text(client):
    stat = SyncStat(success_groups=['SCIM added group "Alpha"'])
    with patch("webapp.run_scim_sync", return_value=stat) as run:
        resp = client.post("/sync")

    assert resp.status_code == 200
    assert resp.get_data(as_text=True) == 'Group Success:\n\tSCIM added group "Alpha"\n'
    assert run.call_args.kwargs == {"verbose": None, "destructive": None}


def test_sync_override_cannot_exceed_configured_destructiveness(client):
    with patch("webapp.run_scim_sync", return_value=SyncStat()) as run:
        client.post("/sync?destructive=5&verbose=true")
        client.post("/sync?destructive=-1")

    assert run.call_args_list[0].kwargs == {"verbose": True, "destructive": 1}
    assert run.call_args_list[1].kwargs["destructive"] == -1


@pytest.mark.parametrize("error", [ConfigurationError("Missing SCIM_URL"), LoadError("directory down")])
def test_sync_failure_returns_500(client, error):
    with patch("webapp.run_scim_sync", side_effect=error):
        resp = client.post("/sync")

    assert resp.status_code == 500
    assert str(error) in resp.get_data(as_text=True)


def test_health_reports_missing_configuration(client, monkeypatch):
    for name in ["SCIM_URL", "SCIM_TOKEN", "SCIM_SOURCE", "AD_SERVER"]:
        monkeypatch.delenv(name, raising=False)

    data = client.get("/health").get_json()

    assert data["status"] == "configuration_error"
    assert "SCIM_URL" in data["missing_vars"]
    assert data["source"] == "ldap"


def test_startup_check_reports_each_incomplete_area(monkeypatch):
    monkeypatch.setattr("utils.config.load_dotenv", lambda: None)
    for name in ["SCIM_URL", "SCIM_TOKEN", "SCIM_SOURCE", "CSV_USERS_FILE", "CSV_GROUPS_FILE"]:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("SCIM_SOURCE", "csv")
    config = webapp.Config()

    with patch.object(webapp.app.logger, "warning") as warning:
        assert not webapp.check_configuration(config)
    messages = [c.args[0] for c in warning.call_args_list]
    assert messages == [
        "Missing SCIM configuration: SCIM_URL, SCIM_TOKEN",
        "Missing csv source configuration: CSV_USERS_FILE, CSV_GROUPS_FILE",
    ]

    monkeypatch.setenv("SCIM_URL", "https://scim.example.com")
    monkeypatch.setenv("SCIM_TOKEN", "token")
    monkeypatch.setenv("CSV_USERS_FILE", "users.csv")
    monkeypatch.setenv("CSV_GROUPS_FILE", "groups.csv")
    assert webapp.check_configuration(config)
