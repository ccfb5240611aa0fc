"""
HTTP API Tests
==============

Endpoints are exercised without the lifespan (no capture connection); the
store and lifecycle manager are wired in per test.
"""

import pytest
from fastapi.testclient import TestClient

from backdrop_fx import main
from backdrop_fx.lifecycle import EffectLifecycleManager
from backdrop_fx.observability import EffectObserver
from backdrop_fx.store import EffectSettingsStore

from conftest import MockEngineFactory, RecordingTrack


@pytest.fixture
def client():
    return TestClient(main.app)


@pytest.fixture
def wired(monkeypatch):
    """Store, observer and manager on a live recording track."""
    observer = EffectObserver()
    track = RecordingTrack()
    manager = EffectLifecycleManager(track, engine_factory=MockEngineFactory(), observer=observer)
    store = EffectSettingsStore()

    monkeypatch.setattr(main, "_observer", observer)
    monkeypatch.setattr(main, "_store", store)
    monkeypatch.setattr(main, "_manager", manager)
    monkeypatch.setattr(main, "_track", track)
    return store, manager, track


class TestProbes:
    """Service information and probes."""

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["service"] == "BackdropFX"

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_not_ready_before_startup(self, client, monkeypatch):
        monkeypatch.setattr(main, "_frame_consumer", None)
        monkeypatch.setattr(main, "_is_ready", False)
        assert client.get("/ready").status_code == 503

    def test_metrics_include_lifecycle(self, client, wired):
        body = client.get("/metrics").json()
        assert body["lifecycle"]["state"] == "IDLE"
        assert body["effect"]["attaches"] == 0


class TestEffectEndpoints:
    """GET/PUT /effect."""

    def test_not_started(self, client, monkeypatch):
        monkeypatch.setattr(main, "_store", None)
        monkeypatch.setattr(main, "_manager", None)
        assert client.get("/effect").status_code == 503
        assert client.put("/effect", json={"kind": "blur"}).status_code == 503

    def test_put_blur_attaches(self, client, wired):
        store, manager, track = wired

        response = client.put("/effect", json={"kind": "blur", "quality": "high"})

        assert response.status_code == 200
        body = response.json()
        assert body["outcome"] == "ATTACHED"
        assert body["state"] == "ATTACHED"
        assert body["effect"]["blur_radius"] == 25.0
        assert store.version == 1
        assert len(track.set_calls) == 1

        current = client.get("/effect").json()
        assert current["attached"]["kind"] == "blur"

    def test_invalid_settings_keep_previous(self, client, wired):
        store, manager, track = wired

        response = client.put("/effect", json={"kind": "replace"})

        assert response.status_code == 422
        assert store.version == 0
        assert track.set_calls == []

    def test_unknown_kind_rejected(self, client, wired):
        assert client.put("/effect", json={"kind": "sparkle"}).status_code == 422

    def test_missing_background_falls_back(self, client, wired, tmp_path):
        store, manager, track = wired

        response = client.put(
            "/effect",
            json={"kind": "replace", "background_path": str(tmp_path / "missing.png")},
        )

        assert response.status_code == 503
        assert response.json()["fallback"] == "passthrough"
        assert track.processor is None

    def test_put_none_detaches(self, client, wired):
        client.put("/effect", json={"kind": "blur"})
        response = client.put("/effect", json={"kind": "none"})

        assert response.json()["outcome"] == "DETACHED"
        assert response.json()["state"] == "IDLE"
