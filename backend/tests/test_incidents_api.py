"""API tests for incident intake, feed and responder endpoints."""

from conftest import auth_headers, make_admin, register, report

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


# =============================================================================
# Intake
# =============================================================================

class TestReportIncident:
    """Tests for POST /api/v1/incidents."""

    def test_report_creates_primary(self, client):
        """A first report is stored as an unverified primary."""
        headers = auth_headers(register(client, "a@example.com"))

        body = report(client, headers)

        assert body["is_duplicate"] is False
        assert body["duplicate_of"] is None
        incident = body["incident"]
        assert incident["incident_id"].startswith("INC-")
        assert incident["status"] == "Reported"
        assert incident["is_verified"] is False
        assert incident["location"] == "Location not provided"
        assert incident["reporter"]["email"] == "a@example.com"

    def test_location_label_is_kept(self, client):
        headers = auth_headers(register(client, "a@example.com"))

        body = report(client, headers, location="MG Road junction")

        assert body["incident"]["location"] == "MG Road junction"

    def test_nearby_report_links_as_duplicate(self, client):
        """Same type inside the box within five minutes links to the primary."""
        first = report(client, auth_headers(register(client, "a@example.com")))
        second = report(client, auth_headers(register(client, "b@example.com")), latitude=10.0005)

        assert second["is_duplicate"] is True
        assert second["duplicate_of"] == first["incident"]["incident_id"]
        assert second["incident"]["duplicate_of_id"] == first["incident"]["id"]

    def test_report_beyond_box_is_new_primary(self, client):
        report(client, auth_headers(register(client, "a@example.com")))
        second = report(client, auth_headers(register(client, "b@example.com")), latitude=10.0012)

        assert second["is_duplicate"] is False

    def test_invalid_severity_rejected(self, client):
        headers = auth_headers(register(client, "a@example.com"))

        response = client.post(
            "/api/v1/incidents",
            data={
                "title": "Crash", "description": "d", "type": "accident",
                "severity": "Catastrophic", "latitude": "10", "longitude": "76",
            },
            headers=headers,
        )

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_missing_title_rejected(self, client):
        headers = auth_headers(register(client, "a@example.com"))

        response = client.post(
            "/api/v1/incidents",
            data={"description": "d", "type": "fire", "severity": "Low", "latitude": "10", "longitude": "76"},
            headers=headers,
        )

        assert response.status_code == 422

    def test_out_of_range_latitude_rejected(self, client):
        headers = auth_headers(register(client, "a@example.com"))

        response = client.post(
            "/api/v1/incidents",
            data={"title": "t", "description": "d", "type": "fire", "severity": "Low", "latitude": "91", "longitude": "76"},
            headers=headers,
        )

        assert response.status_code == 422

    def test_anonymous_report_rejected(self, client):
        response = client.post(
            "/api/v1/incidents",
            data={"title": "t", "description": "d", "type": "fire", "severity": "Low", "latitude": "10", "longitude": "76"},
        )

        assert response.status_code == 401

    def test_invalid_token_rejected(self, client):
        response = client.get("/api/v1/incidents", headers={"Authorization": "Bearer not-a-token"})

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "AUTHENTICATION_REQUIRED"


class TestMediaUpload:
    """Tests for media validation on intake."""

    FORM = {
        "title": "Flooded underpass", "description": "Water up to the knees",
        "type": "natural_disaster", "severity": "Medium", "latitude": "9.9", "longitude": "76.3",
    }

    def test_image_is_stored(self, client):
        headers = auth_headers(register(client, "a@example.com"))

        response = client.post(
            "/api/v1/incidents",
            data=self.FORM,
            files=[("media", ("photo.png", PNG, "image/png"))],
            headers=headers,
        )

        assert response.status_code == 201
        urls = response.json()["incident"]["media_urls"]
        assert len(urls) == 1
        assert urls[0].startswith("/uploads/")
        assert urls[0].endswith(".png")

    def test_disallowed_type_rejected(self, client):
        headers = auth_headers(register(client, "a@example.com"))

        response = client.post(
            "/api/v1/incidents",
            data=self.FORM,
            files=[("media", ("notes.txt", b"hello", "text/plain"))],
            headers=headers,
        )

        assert response.status_code == 422
        assert client.get("/api/v1/incidents/mine", headers=headers).json() == []

    def test_mismatched_extension_rejected(self, client):
        headers = auth_headers(register(client, "a@example.com"))

        response = client.post(
            "/api/v1/incidents",
            data=self.FORM,
            files=[("media", ("photo.exe", PNG, "image/png"))],
            headers=headers,
        )

        assert response.status_code == 422

    def test_too_many_files_rejected(self, client):
        headers = auth_headers(register(client, "a@example.com"))
        files = [("media", (f"p{i}.png", PNG, "image/png")) for i in range(6)]

        response = client.post("/api/v1/incidents", data=self.FORM, files=files, headers=headers)

        assert response.status_code == 422

    def test_oversized_file_rejected(self, client):
        headers = auth_headers(register(client, "a@example.com"))

        response = client.post(
            "/api/v1/incidents",
            data=self.FORM,
            files=[("media", ("big.png", PNG + b"\x00" * 2048, "image/png"))],
            headers=headers,
        )

        assert response.status_code == 422


# =============================================================================
# Feed and detail
# =============================================================================

class TestIncidentFeed:
    """Tests for GET /api/v1/incidents and detail views."""

    def test_feed_excludes_duplicates(self, client):
        first = report(client, auth_headers(register(client, "a@example.com")))
        b_headers = auth_headers(register(client, "b@example.com"))
        report(client, b_headers, latitude=10.0003)

        feed = client.get("/api/v1/incidents", headers=b_headers).json()

        assert [i["incident_id"] for i in feed] == [first["incident"]["incident_id"]]

    def test_detail_lists_merged_incidents(self, client):
        first = report(client, auth_headers(register(client, "a@example.com")))
        b_headers = auth_headers(register(client, "b@example.com"))
        dup = report(client, b_headers, latitude=10.0003)

        detail = client.get(f"/api/v1/incidents/{first['incident']['incident_id']}", headers=b_headers).json()

        assert detail["merged_incidents"] == [dup["incident"]["incident_id"]]

    def test_detail_by_storage_id(self, client):
        headers = auth_headers(register(client, "a@example.com"))
        created = report(client, headers)

        response = client.get(f"/api/v1/incidents/{created['incident']['id']}", headers=headers)

        assert response.status_code == 200
        assert response.json()["incident_id"] == created["incident"]["incident_id"]

    def test_unknown_incident_is_404(self, client):
        headers = auth_headers(register(client, "a@example.com"))

        response = client.get("/api/v1/incidents/INC-0-FFFF", headers=headers)

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"

    def test_mine_includes_duplicates(self, client):
        report(client, auth_headers(register(client, "a@example.com")))
        b_headers = auth_headers(register(client, "b@example.com"))
        dup = report(client, b_headers, latitude=10.0003)

        mine = client.get("/api/v1/incidents/mine", headers=b_headers).json()

        assert [i["incident_id"] for i in mine] == [dup["incident"]["incident_id"]]

    def test_filters(self, client):
        headers = auth_headers(register(client, "a@example.com"))
        report(client, headers, type="fire", latitude=10.0, longitude=76.0)
        report(client, headers, type="crime", latitude=12.0, longitude=77.0)

        fires = client.get("/api/v1/incidents", params={"type": "fire"}, headers=headers).json()
        unknown = client.get("/api/v1/incidents", params={"type": "volcano"}, headers=headers).json()
        verified = client.get("/api/v1/incidents", params={"verified": "true"}, headers=headers).json()
        near = client.get(
            "/api/v1/incidents",
            params={"latitude": 10.01, "longitude": 76.01, "radius": 5},
            headers=headers,
        ).json()

        assert [i["type"] for i in fires] == ["fire"]
        assert len(unknown) == 2
        assert verified == []
        assert [i["type"] for i in near] == ["fire"]

    def test_feed_is_newest_first(self, client):
        headers = auth_headers(register(client, "a@example.com"))
        older = report(client, headers, latitude=1.0)
        newer = report(client, headers, latitude=2.0)

        feed = client.get("/api/v1/incidents", headers=headers).json()

        assert [i["incident_id"] for i in feed] == [
            newer["incident"]["incident_id"],
            older["incident"]["incident_id"],
        ]


# =============================================================================
# Upvotes and responder actions
# =============================================================================

class TestUpvoteAndResponderEndpoints:
    """Tests for upvote, verify, status and notes endpoints."""

    def test_upvote_toggles_verification(self, client):
        created = report(client, auth_headers(register(client, "a@example.com")))
        voter = auth_headers(register(client, "b@example.com"))
        url = f"/api/v1/incidents/{created['incident']['incident_id']}/upvote"

        first = client.post(url, headers=voter).json()
        second = client.post(url, headers=voter).json()

        assert first == {"upvotes": 1, "is_verified": True, "verification_method": "upvote", "has_upvoted": True}
        assert second == {"upvotes": 0, "is_verified": False, "verification_method": None, "has_upvoted": False}

    def test_self_upvote_is_400(self, client):
        headers = auth_headers(register(client, "a@example.com"))
        created = report(client, headers)

        response = client.post(f"/api/v1/incidents/{created['incident']['incident_id']}/upvote", headers=headers)

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "BAD_REQUEST"

    def test_citizen_cannot_verify(self, client):
        created = report(client, auth_headers(register(client, "a@example.com")))
        other = auth_headers(register(client, "b@example.com"))

        response = client.post(f"/api/v1/incidents/{created['incident']['incident_id']}/verify", headers=other)

        assert response.status_code == 403

    def test_admin_verifies_and_manages(self, client):
        created = report(client, auth_headers(register(client, "a@example.com")))
        admin = auth_headers(make_admin(client))
        base = f"/api/v1/incidents/{created['incident']['incident_id']}"

        verified = client.post(f"{base}/verify", headers=admin).json()
        status = client.put(f"{base}/status", json={"status": "In Progress"}, headers=admin).json()
        noted = client.post(f"{base}/notes", json={"note": "Crew dispatched"}, headers=admin).json()

        assert verified["verification_method"] == "admin"
        assert verified["verified_by_id"] is not None
        assert status["status"] == "In Progress"
        assert [n["text"] for n in noted["internal_notes"]] == ["Crew dispatched"]

    def test_invalid_status_rejected(self, client):
        created = report(client, auth_headers(register(client, "a@example.com")))
        admin = auth_headers(make_admin(client))

        response = client.put(
            f"/api/v1/incidents/{created['incident']['incident_id']}/status",
            json={"status": "Closed"},
            headers=admin,
        )

        assert response.status_code == 422

    def test_notes_hidden_from_reporter(self, client):
        reporter = auth_headers(register(client, "a@example.com"))
        created = report(client, reporter)
        admin = auth_headers(make_admin(client))
        url = f"/api/v1/incidents/{created['incident']['incident_id']}"
        client.post(f"{url}/notes", json={"note": "Internal"}, headers=admin)

        detail = client.get(url, headers=reporter).json()

        assert detail["internal_notes"] == []

    def test_citizen_cannot_add_notes(self, client):
        headers = auth_headers(register(client, "a@example.com"))
        created = report(client, headers)

        response = client.post(
            f"/api/v1/incidents/{created['incident']['incident_id']}/notes",
            json={"note": "Mine"},
            headers=headers,
        )

        assert response.status_code == 403


class TestDashboard:
    """Tests for GET /api/v1/dashboard/stats."""

    def test_counts_exclude_duplicates(self, client):
        report(client, auth_headers(register(client, "a@example.com")))
        report(client, auth_headers(register(client, "b@example.com")), latitude=10.0002)
        admin = auth_headers(make_admin(client))

        stats = client.get("/api/v1/dashboard/stats", headers=admin).json()

        assert stats["incidents_today"] == 1
        assert stats["need_review"] == 1
        assert stats["resolved_today"] == 0
        assert stats["total_active_users"] == 2

    def test_resolved_today(self, client):
        created = report(client, auth_headers(register(client, "a@example.com")))
        admin = auth_headers(make_admin(client))
        client.put(
            f"/api/v1/incidents/{created['incident']['incident_id']}/status",
            json={"status": "Resolved"},
            headers=admin,
        )

        stats = client.get("/api/v1/dashboard/stats", headers=admin).json()

        assert stats["resolved_today"] == 1
        assert stats["need_review"] == 0

    def test_citizens_denied(self, client):
        headers = auth_headers(register(client, "a@example.com"))

        assert client.get("/api/v1/dashboard/stats", headers=headers).status_code == 403
