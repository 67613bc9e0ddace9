import httpx
import pytest
from fastapi.testclient import TestClient

from groupcast.api.sonos import status_for
from groupcast.main import build_commands, create_app
from groupcast.services.errors import GroupBusy, ProtocolFault, UnknownAction
from groupcast.services.topology import Anchor


KITCHEN = "192.168.1.10"
OFFICE = "192.168.1.12"


@pytest.fixture
def client(household):
    commands = build_commands(Anchor(host=KITCHEN), transport=httpx.MockTransport(household.handle))
    with TestClient(create_app(commands)) as test_client:
        yield test_client


def test_health(client) -> None:
    resp = client.get("/api/health")

    assert resp.status_code == 200
    assert resp.json() == {"status": "ok", "anchor": KITCHEN, "busy_groups": []}


def test_list_commands(client) -> None:
    commands = client.get("/api/sonos/commands").json()["commands"]

    assert "group.play.notification" in commands
    assert "player.set.volume" in commands
    assert commands == sorted(commands)


def test_command_returns_patch(client) -> None:
    resp = client.post("/api/sonos/command", json={"payload": "Player.Get.Role", "playerName": "Office"})

    assert resp.status_code == 200
    assert resp.json() == {"ok": True, "command": "player.get.role", "patch": {"payload": "joiner"}}


def test_command_changes_player(client, household) -> None:
    resp = client.post("/api/sonos/command", json={"payload": "player.set.volume", "topic": 45, "playerName": "Bath"})

    assert resp.status_code == 200
    assert resp.json()["patch"] == {}
    assert household.players["192.168.1.13"].volume == 45


def test_unknown_command_is_bad_request(client, household) -> None:
    resp = client.post("/api/sonos/command", json={"payload": "dance"})

    assert resp.status_code == 400
    assert resp.json()["detail"]["kind"] == "validation"
    assert household.calls == []


def test_unknown_player_is_not_found(client) -> None:
    resp = client.post("/api/sonos/command", json={"payload": "stop", "playerName": "Garage"})

    assert resp.status_code == 404
    assert resp.json()["detail"]["kind"] == "player_not_in_any_group"


def test_missing_payload_is_unprocessable(client, household) -> None:
    assert client.post("/api/sonos/command", json={"topic": "x"}).status_code == 422
    assert client.post("/api/sonos/command", json={"payload": ""}).status_code == 422
    assert household.calls == []


def test_upnp_fault_is_bad_gateway(client, household) -> None:
    household.fail(KITCHEN, "Next", code="711")

    resp = client.post("/api/sonos/command", json={"payload": "next.track"})

    assert resp.status_code == 502
    detail = resp.json()["detail"]
    assert detail["kind"] == "protocol_fault"
    assert detail["action"] == "Next"
    assert detail["upnp_error_code"] == "711"


def test_timeout_is_gateway_timeout(client, household) -> None:
    household.raise_on(OFFICE, "GetVolume", httpx.ReadTimeout)

    resp = client.post("/api/sonos/command", json={"payload": "player.get.volume", "playerName": "Office"})

    assert resp.status_code == 504
    assert resp.json()["detail"]["kind"] == "timeout"


def test_status_for_remaining_errors() -> None:
    assert status_for(GroupBusy("busy")) == 409
    assert status_for(UnknownAction("nope")) == 500
    assert status_for(ProtocolFault("fault")) == 502
