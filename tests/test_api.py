"""
Tests for API endpoints.
"""

import pytest
from fastapi.testclient import TestClient

from climate_monitor.api.main import create_app, parse_limit
from climate_monitor.mqtt.main import SubscriberState, TelemetrySubscriber


@pytest.fixture
def app(settings, store):
    return create_app(settings, store)


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def filled_store(store, make_reading):
    store.record(make_reading(temperature=20, humidity=40, captured_at=1_700_000_000))
    store.record(make_reading(temperature=22, humidity=42, captured_at=1_700_000_005))
    store.record(make_reading(temperature=None, humidity=45, captured_at=1_700_000_010))
    return store


class TestSensorData:
    """Tests for /api/sensor-data."""

    def test_before_first_reading(self, client):
        """Test that an empty store returns a placeholder, not an error."""
        response = client.get("/api/sensor-data")

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["lastUpdate"] is None
        assert body["data"]["temperature"] is None
        assert body["data"]["state"] == "IDLE"
        assert body["data"]["uuid"] == "2020171026"

    def test_current_reading(self, client, filled_store):
        body = client.get("/api/sensor-data").json()

        assert body["data"]["humidity"] == 45
        assert body["data"]["timestamp"] == 1_700_000_010
        assert body["lastUpdate"] == "2023-11-14T22:13:30.000Z"

    def test_legacy_post_is_ignored(self, client, store):
        """Test that the deprecated HTTP ingestion path records nothing."""
        response = client.post("/api/sensor-data", json={"temperatura": 30.0, "humedad": 50})

        assert response.status_code == 200
        assert response.headers["Deprecation"] == "true"
        body = response.json()
        assert body["success"] is True
        assert body["deprecated"] is True
        assert store.current() is None
        assert len(store) == 0

    def test_legacy_post_accepts_any_body(self, client):
        response = client.post("/api/sensor-data", content=b"not json at all")

        assert response.status_code == 200


class TestSensorHistory:
    """Tests for /api/sensor-history."""

    def test_default_limit(self, client, store, make_reading):
        for i in range(80):
            store.record(make_reading(captured_at=i + 1))

        body = client.get("/api/sensor-history").json()

        assert body["count"] == 50
        assert body["data"][0]["timestamp"] == 31
        assert body["data"][-1]["timestamp"] == 80

    def test_explicit_limit(self, client, filled_store):
        body = client.get("/api/sensor-history", params={"limit": 2}).json()

        assert body["count"] == 2
        assert [item["humidity"] for item in body["data"]] == [42, 45]

    @pytest.mark.parametrize("limit", ["abc", "0", "-4", ""])
    def test_bad_limit_uses_default(self, client, filled_store, limit):
        response = client.get("/api/sensor-history", params={"limit": limit})

        assert response.status_code == 200
        assert response.json()["count"] == 3

    def test_empty_history(self, client):
        body = client.get("/api/sensor-history").json()

        assert body == {"success": True, "data": [], "count": 0}


class TestSensorStats:
    """Tests for /api/sensor-stats."""

    def test_empty_stats(self, client):
        body = client.get("/api/sensor-stats").json()

        assert body["data"] == {
            "minTemp": None,
            "maxTemp": None,
            "avgTemp": None,
            "avgHumidity": None,
            "totalReadings": 0,
        }

    def test_stats(self, client, filled_store):
        body = client.get("/api/sensor-stats").json()

        assert body["success"] is True
        assert body["data"] == {
            "minTemp": 20,
            "maxTemp": 22,
            "avgTemp": 21.0,
            "avgHumidity": 42.3,
            "totalReadings": 3,
        }

    def test_stats_survive_huge_reading(self, client, store, make_reading):
        """Test that one absurd temperature does not break /api/sensor-stats."""
        store.record(make_reading(temperature=1e30, humidity=40))
        store.record(make_reading(temperature=20.0, humidity=42))

        response = client.get("/api/sensor-stats")

        assert response.status_code == 200
        assert response.json()["data"]["totalReadings"] == 2


class TestStatus:
    """Tests for /api/status."""

    def test_status_fields(self, client, filled_store):
        body = client.get("/api/status").json()

        for field in ["success", "server", "version", "uptime", "timestamp", "dataPoints", "ssl", "mqtt"]:
            assert field in body, f"Status response should include {field}"
        assert body["dataPoints"] == 3
        assert body["ssl"] is False
        assert body["mqtt"] == "disconnected"
        assert body["uptime"] >= 0

    def test_ssl_flag(self, settings, store):
        settings = settings.model_copy(update={"ssl_certfile": "cert.pem", "ssl_keyfile": "key.pem"})
        client = TestClient(create_app(settings, store))

        assert client.get("/api/status").json()["ssl"] is True


class TestOta:
    """Tests for /api/ota/*."""

    def test_ota_info(self, client):
        body = client.get("/api/ota/info").json()

        assert body["currentVersion"] == "1.0"
        assert body["firmware"]["available"] is True
        assert body["changelog"]

    def test_force_update_without_broker(self, client):
        """Test that the trigger reports 503 when the command cannot be sent."""
        response = client.post("/api/ota/force-update")

        assert response.status_code == 503
        assert response.json()["success"] is False

    def test_force_update_accepted(self, settings, store, mock_mqtt_client):
        subscriber = TelemetrySubscriber(settings, store, client=mock_mqtt_client)
        client = TestClient(create_app(settings, store, subscriber=subscriber))

        response = client.post("/api/ota/force-update")

        assert response.status_code == 200
        assert response.json()["update"]["state"] == "requested"
        mock_mqtt_client.publish.assert_called_once()

        # Device progress arrives on the OTA topic
        subscriber.handle_ota_status(b'{"status": "downloading", "progress": 50}')
        update = client.get("/api/ota/info").json()["update"]
        assert update["state"] == "downloading"
        assert update["progress"] == 50

        assert client.post("/api/ota/force-update").status_code == 409

    def test_force_update_not_available(self, client, store, make_reading):
        store.record(make_reading(firmware_version="9.9"))

        response = client.post("/api/ota/force-update")

        assert response.status_code == 409


class TestLifespan:
    """Tests for subscriber start/stop with the app."""

    def test_subscriber_started_and_stopped(self, settings, store, mock_mqtt_client):
        subscriber = TelemetrySubscriber(settings, store, client=mock_mqtt_client)
        app = create_app(settings, store, subscriber=subscriber)

        with TestClient(app) as client:
            assert subscriber.state == SubscriberState.CONNECTING
            mock_mqtt_client.loop_start.assert_called_once()
            assert client.get("/api/status").json()["mqtt"] == "connecting"

        mock_mqtt_client.loop_stop.assert_called_once()
        assert subscriber.state == SubscriberState.DISCONNECTED

    def test_mqtt_disabled(self, app):
        with TestClient(app):
            assert app.state.subscriber is None


class TestDashboardAndErrors:
    """Tests for the static page and error handling."""

    def test_dashboard_served(self, settings, client):
        (settings.static_dir / "index.html").write_text("<h1>Climate</h1>")

        response = client.get("/")

        assert response.status_code == 200
        assert "Climate" in response.text

    def test_dashboard_missing(self, client):
        assert client.get("/").status_code == 404

    def test_unhandled_error_returns_500(self, settings, store, monkeypatch):
        app = create_app(settings, store)
        monkeypatch.setattr(app.state.query, "get_stats", lambda: 1 / 0)
        client = TestClient(app, raise_server_exceptions=False)

        response = client.get("/api/sensor-stats")

        assert response.status_code == 500
        assert response.json() == {"success": False, "message": "Internal server error"}

    def test_cors_headers(self, client):
        response = client.get("/api/status", headers={"Origin": "http://dashboard.local"})

        assert response.headers["access-control-allow-origin"] == "*"


class TestParseLimit:
    """Tests for lenient limit parsing."""

    @pytest.mark.parametrize("raw,expected", [
        (None, None),
        ("10", 10),
        (" 7 ", 7),
        ("0", None),
        ("-1", None),
        ("ten", None),
        ("", None),
    ])
    def test_parse_limit(self, raw, expected):
        assert parse_limit(raw) == expected
