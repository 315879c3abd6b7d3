"""API tests for accounts, scores, leaderboard and rewards."""

from conftest import TEST_PASSWORD, auth_headers, login, make_admin, register, report


# =============================================================================
# Registration and login
# =============================================================================

class TestRegistration:
    """Tests for POST /api/v1/auth/register."""

    def test_register_returns_tokens_and_user(self, client):
        body = register(client, "New.User@Example.com", name="New User")

        assert body["token_type"] == "bearer"
        assert body["refresh_token"]
        assert body["user"]["email"] == "new.user@example.com"
        assert body["user"]["role"] == "user"

    def test_duplicate_email_is_conflict(self, client):
        register(client, "a@example.com")

        response = client.post(
            "/api/v1/auth/register",
            json={"name": "Again", "email": "A@example.com", "password": TEST_PASSWORD},
        )

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "CONFLICT"

    def test_invalid_email_rejected(self, client):
        response = client.post(
            "/api/v1/auth/register",
            json={"name": "x", "email": "not-an-email", "password": TEST_PASSWORD},
        )
        assert response.status_code == 422

    def test_short_password_rejected(self, client):
        response = client.post(
            "/api/v1/auth/register",
            json={"name": "x", "email": "x@example.com", "password": "123"},
        )
        assert response.status_code == 422


class TestLogin:
    """Tests for login, refresh and revocation."""

    def test_login(self, client):
        register(client, "a@example.com")

        body = login(client, "a@example.com")

        assert body["user"]["email"] == "a@example.com"
        assert body["access_token"]

    def test_wrong_password_is_401(self, client):
        register(client, "a@example.com")

        response = client.post(
            "/api/v1/auth/login",
            json={"email": "a@example.com", "password": "wrong-password"},
        )

        assert response.status_code == 401

    def test_unknown_email_is_401(self, client):
        response = client.post(
            "/api/v1/auth/login",
            json={"email": "ghost@example.com", "password": TEST_PASSWORD},
        )
        assert response.status_code == 401

    def test_refresh_rotates_token(self, client):
        tokens = register(client, "a@example.com")

        first = client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        replay = client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})

        assert first.status_code == 200
        assert first.json()["access_token"] != tokens["access_token"]
        assert replay.status_code == 401

    def test_access_token_cannot_refresh(self, client):
        tokens = register(client, "a@example.com")

        response = client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["access_token"]})

        assert response.status_code == 401

    def test_revoked_access_token_is_rejected(self, client):
        tokens = register(client, "a@example.com")
        headers = auth_headers(tokens)

        revoked = client.post("/api/v1/auth/revoke", json={"token": tokens["access_token"]}, headers=headers)

        assert revoked.json() == {"revoked": True}
        assert client.get("/api/v1/users/me", headers=headers).status_code == 401

    def test_revoke_requires_authentication(self, client):
        response = client.post("/api/v1/auth/revoke", json={"token": "anything"})
        assert response.status_code == 401

    def test_status(self, client):
        headers = auth_headers(register(client, "a@example.com"))

        anonymous = client.get("/api/v1/auth/status").json()
        signed_in = client.get("/api/v1/auth/status", headers=headers).json()

        assert anonymous["authenticated"] is False
        assert signed_in["authenticated"] is True
        assert signed_in["roles"] == ["user"]
        assert "incident:submit" in signed_in["permissions"]
        assert "dashboard:view" not in signed_in["permissions"]


# =============================================================================
# Superadmin and admin promotion
# =============================================================================

class TestAdminProvisioning:
    """Tests for setup-superadmin and admin promotion."""

    ROOT = {"name": "Root", "email": "root@example.com", "password": TEST_PASSWORD}

    def test_superadmin_setup_is_one_time(self, client):
        first = client.post("/api/v1/auth/setup-superadmin", json=self.ROOT)
        second = client.post(
            "/api/v1/auth/setup-superadmin",
            json={**self.ROOT, "email": "other@example.com"},
        )

        assert first.status_code == 201
        assert first.json()["user"]["role"] == "superadmin"
        assert second.status_code == 409

    def test_promoted_admin_gets_responder_role(self, client):
        body = make_admin(client)

        assert body["user"]["role"] == "admin"

    def test_citizen_cannot_promote(self, client):
        register(client, "target@example.com")
        headers = auth_headers(register(client, "a@example.com"))

        response = client.post("/api/v1/auth/admins", json={"email": "target@example.com"}, headers=headers)

        assert response.status_code == 403

    def test_admin_cannot_promote(self, client):
        admin = auth_headers(make_admin(client))
        register(client, "target@example.com")

        response = client.post("/api/v1/auth/admins", json={"email": "target@example.com"}, headers=admin)

        assert response.status_code == 403

    def test_promote_unknown_and_existing(self, client):
        make_admin(client)
        root = auth_headers(login(client, "root@example.com"))

        unknown = client.post("/api/v1/auth/admins", json={"email": "ghost@example.com"}, headers=root)
        already = client.post("/api/v1/auth/admins", json={"email": "responder@example.com"}, headers=root)

        assert unknown.status_code == 404
        assert already.status_code == 409


# =============================================================================
# Profile, score and leaderboard
# =============================================================================

class TestProfileAndScore:
    """Tests for /users/me, /users/me/score and /users/leaderboard."""

    def test_new_user_profile(self, client):
        headers = auth_headers(register(client, "a@example.com", name="Asha"))

        profile = client.get("/api/v1/users/me", headers=headers).json()

        assert profile["user"]["name"] == "Asha"
        assert profile["score"]["total_points"] == 0
        assert profile["score"]["rank"] == 1
        assert profile["redeemed_rewards"] == []

    def test_points_follow_severity(self, client):
        headers = auth_headers(register(client, "a@example.com"))
        report(client, headers, severity="High", latitude=1.0)
        report(client, headers, severity="Medium", latitude=2.0)
        report(client, headers, severity="Low", latitude=3.0)

        score = client.get("/api/v1/users/me/score", headers=headers).json()

        assert score["total_points"] == 105
        assert score["monthly_points"] == 105
        assert score["points_remaining"] == 105
        assert score["reports_count"] == 3

    def test_duplicate_report_earns_nothing(self, client):
        report(client, auth_headers(register(client, "a@example.com")))
        headers = auth_headers(register(client, "b@example.com"))
        report(client, headers, latitude=10.0004)

        score = client.get("/api/v1/users/me/score", headers=headers).json()

        assert score["total_points"] == 0
        assert score["reports_count"] == 1
        assert score["rank"] == 2

    def test_leaderboard_orders_by_points(self, client):
        low = auth_headers(register(client, "low@example.com", name="Low"))
        high = auth_headers(register(client, "high@example.com", name="High"))
        report(client, low, severity="Low", latitude=1.0)
        report(client, high, severity="High", latitude=2.0)

        board = client.get("/api/v1/users/leaderboard", headers=low).json()

        assert [e["name"] for e in board[:2]] == ["High", "Low"]
        assert [e["rank"] for e in board[:2]] == [1, 2]
        assert board[0]["points"] == 50

    def test_anonymous_score_is_401(self, client):
        assert client.get("/api/v1/users/me/score").status_code == 401


# =============================================================================
# Rewards
# =============================================================================

class TestRewardsApi:
    """Tests for the reward catalogue and redemption endpoints."""

    RECHARGE = "₹50 Mobile Recharge"

    @staticmethod
    def earn_300(client, headers):
        for i in range(6):
            report(client, headers, severity="High", latitude=1.0 + i)

    def test_catalogue_for_new_user(self, client):
        headers = auth_headers(register(client, "a@example.com"))

        body = client.get("/api/v1/rewards", headers=headers).json()

        assert body["points_remaining"] == 0
        assert len(body["rewards"]) == 11
        assert not any(r["affordable"] for r in body["rewards"])
        assert body["next_reward"]["points"] == 300

    def test_insufficient_points_is_conflict(self, client):
        headers = auth_headers(register(client, "a@example.com"))

        response = client.post("/api/v1/rewards/redeem", json={"title": self.RECHARGE}, headers=headers)

        assert response.status_code == 409

    def test_unknown_reward_is_422(self, client):
        headers = auth_headers(register(client, "a@example.com"))

        response = client.post("/api/v1/rewards/redeem", json={"title": "Yacht"}, headers=headers)

        assert response.status_code == 422

    def test_redeem_once(self, client):
        headers = auth_headers(register(client, "a@example.com"))
        self.earn_300(client, headers)

        first = client.post("/api/v1/rewards/redeem", json={"title": self.RECHARGE}, headers=headers)
        again = client.post("/api/v1/rewards/redeem", json={"title": self.RECHARGE}, headers=headers)

        assert first.status_code == 201
        body = first.json()
        assert body["points_remaining"] == 0
        assert body["total_points"] == 300
        assert body["redemption"]["title"] == self.RECHARGE
        assert again.status_code == 409

    def test_history_and_catalogue_reflect_redemption(self, client):
        headers = auth_headers(register(client, "a@example.com"))
        self.earn_300(client, headers)
        client.post("/api/v1/rewards/redeem", json={"title": self.RECHARGE}, headers=headers)

        history = client.get("/api/v1/rewards/history", headers=headers).json()
        catalogue = client.get("/api/v1/rewards", headers=headers).json()
        profile = client.get("/api/v1/users/me", headers=headers).json()

        assert [h["title"] for h in history] == [self.RECHARGE]
        recharge = next(r for r in catalogue["rewards"] if r["title"] == self.RECHARGE)
        assert recharge["redeemed"] is True
        assert recharge["affordable"] is False
        assert [r["title"] for r in profile["redeemed_rewards"]] == [self.RECHARGE]
        assert profile["score"]["total_points"] == 300
