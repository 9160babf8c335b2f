"""Tests for /api/locale routes."""

from locale_storage.models import StorageKey


def _add(client, locale="zh", source="browser", confidence=0.9, **extra):
    body = {"locale": locale, "source": source, "confidence": confidence, **extra}
    return client.post("/api/locale/history", json=body)


class TestHealth:
    def test_app_health(self, client):
        res = client.get("/api/health")
        assert res.status_code == 200
        assert res.json() == {"status": "ok"}

    def test_storage_health(self, client):
        res = client.get("/api/locale/health")
        assert res.status_code == 200
        assert res.json()["health"]["status"] == "healthy"
        assert "local_usage" in res.json()["storage"]


class TestHistoryRoutes:
    def test_add_and_list(self, client):
        res = _add(client, metadata={"header": "zh-CN"})
        assert res.status_code == 201
        body = res.json()
        assert body["success"] is True
        assert body["data"]["history"][0]["locale"] == "zh"

        res = client.get("/api/locale/history")
        assert res.status_code == 200
        data = res.json()
        assert data["total_count"] == 1
        assert data["records"][0]["metadata"] == {"header": "zh-CN"}
        assert data["has_more"] is False

    def test_confidence_clamped(self, client):
        res = _add(client, confidence=4.2)
        assert res.status_code == 201
        assert res.json()["data"]["history"][0]["confidence"] == 1.0

    def test_unsupported_locale(self, client):
        res = _add(client, locale="fr")
        assert res.status_code == 422
        assert "unsupported locale" in res.json()["detail"]

    def test_missing_field(self, client):
        res = client.post("/api/locale/history", json={"locale": "zh"})
        assert res.status_code == 422

    def test_list_filters_and_paging(self, client):
        _add(client, "zh", "browser", 0.9)
        _add(client, "en", "geo", 0.3)
        _add(client, "zh", "geo", 0.7)
        data = client.get("/api/locale/history", params={"source": "geo", "limit": 1}).json()
        assert data["total_count"] == 2
        assert len(data["records"]) == 1
        assert data["has_more"] is True

        data = client.get("/api/locale/history", params={"min_confidence": 0.8}).json()
        assert data["total_count"] == 1

    def test_summary(self, client):
        _add(client)
        data = client.get("/api/locale/history/summary").json()
        assert data["total_records"] == 1
        assert data["cleanup"]["needs_cleanup"] is False

    def test_search(self, client):
        _add(client, metadata={"ua": "Firefox"})
        _add(client, "en", "geo", 0.5)
        res = client.get("/api/locale/history/search", params={"q": "firefox"})
        assert res.status_code == 200
        assert len(res.json()) == 1

    def test_export_import_round_trip(self, client):
        _add(client)
        _add(client, "en", "geo", 0.4)
        exported = client.get("/api/locale/history/export").json()["data"]
        assert client.delete("/api/locale/history").json()["data"] == 2
        assert client.get("/api/locale/history").json()["total_count"] == 0

        res = client.post("/api/locale/history/import", json={"data": exported})
        assert res.status_code == 200
        assert res.json()["data"] == 2
        assert client.get("/api/locale/history").json()["total_count"] == 2

    def test_import_rejects_invalid(self, client):
        res = client.post(
            "/api/locale/history/import",
            json={"data": {"detections": "not-an-array", "lastUpdated": 123}},
        )
        assert res.status_code == 422
        assert res.json()["detail"] == "Invalid history data format"

    def test_stats(self, client):
        _add(client)
        data = client.get("/api/locale/stats", params={"days": 3}).json()
        assert data["stats"]["total_detections"] == 1
        assert len(data["trends"]["daily_detections"]) == 3
        assert "read_latency" in data["performance"]


class TestPreferenceRoutes:
    def test_preference_absent(self, client):
        res = client.get("/api/locale/preference")
        assert res.status_code == 200
        body = res.json()
        assert body["success"] is True
        assert body["data"] == {"preference": None, "override": None}

    def test_set_override_sets_cookies(self, client):
        res = client.put("/api/locale/override", json={"locale": "zh"})
        assert res.status_code == 200
        cookies = res.headers.get_list("set-cookie")
        assert any(c.startswith("user_locale_override=zh") for c in cookies)
        assert any(c.startswith("locale_preference=") for c in cookies)

        body = client.get("/api/locale/preference").json()
        assert body["data"]["override"] == "zh"
        assert body["data"]["preference"]["source"] == "user"

    def test_set_override_rejects_unknown(self, client):
        res = client.put("/api/locale/override", json={"locale": "xx"})
        assert res.status_code == 422

    def test_clear_override(self, client, web_manager):
        client.put("/api/locale/override", json={"locale": "en"})
        res = client.delete("/api/locale/override")
        assert res.status_code == 200
        assert web_manager.get_user_override() is None


class TestConsistencyRoutes:
    def test_consistent(self, client):
        data = client.get("/api/locale/consistency").json()
        assert data["integrity"]["success"] is True
        assert data["consistency"]["data"] == {"issues": [], "warnings": []}
        assert data["sync_issues"] == []

    def test_mismatch_reported(self, client, web_manager):
        web_manager.local.set(StorageKey.USER_LOCALE_OVERRIDE, "en")
        web_manager.cookie.set(StorageKey.USER_LOCALE_OVERRIDE, "zh")
        data = client.get("/api/locale/consistency").json()
        assert data["consistency"]["success"] is False
        assert len(data["consistency"]["data"]["issues"]) == 1

    def test_sync(self, client, web_manager):
        web_manager.local.set(StorageKey.USER_LOCALE_OVERRIDE, "zh")
        res = client.post("/api/locale/sync")
        assert res.status_code == 200
        assert res.json()["data"]["fixed_issues"] == 1
        assert any(
            c.startswith("user_locale_override=zh") for c in res.headers.get_list("set-cookie")
        )

    def test_sync_noop(self, client):
        res = client.post("/api/locale/sync")
        assert res.json()["data"]["fixed_issues"] == 0
        assert res.headers.get_list("set-cookie") == []


class TestMaintenanceRoutes:
    def test_run_defaults(self, client):
        _add(client)
        data = client.post("/api/locale/maintenance", json={}).json()
        assert data["total_operations"] == 5
        assert data["successful_operations"] == 5

    def test_run_compact_only(self, client):
        body = {
            "cleanup_expired": False,
            "cleanup_duplicates": False,
            "cleanup_invalid": False,
            "validate_data": False,
            "fix_sync_issues": False,
            "compact_storage": True,
        }
        data = client.post("/api/locale/maintenance", json=body).json()
        assert list(data["results"]) == ["compact_storage"]

    def test_recommendations(self, client):
        data = client.get("/api/locale/maintenance/recommendations").json()
        assert data["priority"] == "low"


class TestEventRoutes:
    def test_recent_events(self, client):
        _add(client)
        client.put("/api/locale/override", json={"locale": "en"})
        events = client.get("/api/locale/events", params={"limit": 5}).json()
        assert [e["type"] for e in events] == ["override_set", "preference_saved"]
        assert events[1]["source"] == "history_manager"
