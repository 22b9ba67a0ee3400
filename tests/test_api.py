"""HTTP tests: auth, the hiring flow, admin tools and strikes through the API."""

from findermeister.app.config import get_settings
from findermeister.services.auth_service import create_access_token


def auth_headers(user) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id, user.email, user.role)}"}


async def _register(client, role, email, password="secret123", **extra):
    resp = await client.post(
        "/api/auth/register",
        json={
            "email": email,
            "password": password,
            "firstName": "Pat",
            "lastName": role.capitalize(),
            "role": role,
            **extra,
        },
    )
    assert resp.status_code == 201, resp.text
    body = resp.json()
    return body["user"], {"Authorization": f"Bearer {body['token']}"}


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class TestAuth:
    async def test_register_and_login(self, api_client):
        async with api_client() as client:
            user, _ = await _register(client, "finder", "Finder@Example.com")
            assert user["email"] == "finder@example.com"
            assert "passwordHash" not in user

            resp = await client.post(
                "/api/auth/login",
                json={"email": "finder@example.com", "password": "secret123"},
            )
            assert resp.status_code == 200
            assert resp.json()["user"]["id"] == user["id"]

    async def test_duplicate_email(self, api_client):
        async with api_client() as client:
            await _register(client, "client", "dup@example.com")
            resp = await client.post(
                "/api/auth/register",
                json={
                    "email": "dup@example.com",
                    "password": "secret123",
                    "firstName": "A",
                    "lastName": "B",
                },
            )
        assert resp.status_code == 400
        assert resp.json()["message"] == "User already exists with this email"

    async def test_wrong_password(self, api_client):
        async with api_client() as client:
            await _register(client, "client", "pw@example.com")
            resp = await client.post(
                "/api/auth/login", json={"email": "pw@example.com", "password": "nope"}
            )
        assert resp.status_code == 401
        assert resp.json() == {"message": "Invalid credentials"}

    async def test_me_is_idempotent(self, api_client):
        async with api_client() as client:
            _, headers = await _register(client, "finder", "me@example.com")
            first = await client.get("/api/auth/me", headers=headers)
            second = await client.get("/api/auth/me", headers=headers)

        assert first.status_code == 200
        assert first.json() == second.json()
        assert first.json()["profile"]["tokenBalance"] == get_settings().finder_signup_tokens

    async def test_missing_token(self, api_client):
        async with api_client() as client:
            resp = await client.get("/api/auth/me")
        assert resp.status_code == 401
        assert resp.json()["message"] == "Access token required"

    async def test_invalid_token(self, api_client):
        async with api_client() as client:
            resp = await client.get("/api/auth/me", headers={"Authorization": "Bearer junk"})
        assert resp.status_code == 401

    async def test_validation_error_shape(self, api_client):
        async with api_client() as client:
            resp = await client.post("/api/auth/register", json={"email": "not-an-email"})
        assert resp.status_code == 400
        body = resp.json()
        assert body["message"] == "Validation failed"
        assert "error" in body


# ---------------------------------------------------------------------------
# Hiring flow
# ---------------------------------------------------------------------------


class TestHiringFlow:
    async def test_full_flow(self, api_client, email_mock):
        async with api_client() as client:
            _, client_headers = await _register(client, "client", "buyer@example.com")
            _, finder_headers = await _register(client, "finder", "seeker@example.com")

            resp = await client.post(
                "/api/client/finds",
                headers=client_headers,
                json={
                    "title": "Logo design",
                    "description": "Modern logo for a bakery",
                    "category": "Design",
                    "budgetMin": 1000,
                    "budgetMax": 2000,
                },
            )
            assert resp.status_code == 201, resp.text
            find = resp.json()
            assert find["status"] == "open"

            resp = await client.post(
                "/api/proposals",
                headers=finder_headers,
                json={
                    "findId": find["id"],
                    "approach": "Brief three designers",
                    "price": 1500,
                    "timeline": "2 weeks",
                },
            )
            assert resp.status_code == 201, resp.text
            proposal = resp.json()
            assert proposal["status"] == "pending"

            balance = await client.get("/api/findertokens/balance", headers=finder_headers)
            assert balance.json() == {"balance": get_settings().finder_signup_tokens - 1}

            resp = await client.post(
                f"/api/proposals/{proposal['id']}/accept", headers=client_headers
            )
            assert resp.status_code == 200, resp.text
            accepted = resp.json()
            assert accepted["proposal"]["status"] == "accepted"
            contract = accepted["contract"]
            assert contract["escrowStatus"] == "held"

            resp = await client.get(f"/api/finds/{find['id']}", headers=client_headers)
            assert resp.json()["status"] == "in_progress"

            resp = await client.post(
                "/api/orders/submit",
                headers=finder_headers,
                json={"contractId": contract["id"], "submissionText": "Final files attached"},
            )
            assert resp.status_code == 201, resp.text
            submission = resp.json()

            resp = await client.put(
                f"/api/orders/submission/{submission['id']}",
                headers=client_headers,
                json={"status": "accepted"},
            )
            assert resp.status_code == 200
            assert resp.json()["status"] == "accepted"

            resp = await client.post(
                f"/api/contracts/{contract['id']}/release-payment", headers=client_headers
            )
            assert resp.status_code == 200
            assert resp.json()["escrowStatus"] == "released"

            again = await client.post(
                f"/api/contracts/{contract['id']}/release-payment", headers=client_headers
            )
            assert again.status_code == 400

            me = await client.get("/api/auth/me", headers=finder_headers)
            assert me.json()["profile"]["availableBalance"] == 1500

            resp = await client.post(
                "/api/reviews",
                headers=client_headers,
                json={"contractId": contract["id"], "rating": 5, "comment": "Perfect"},
            )
            assert resp.status_code == 201

        email_mock.notify_finder_hired.assert_awaited_once()
        email_mock.notify_finder_payment_released.assert_awaited_once()

    async def test_finder_cannot_post_find(self, api_client):
        async with api_client() as client:
            _, finder_headers = await _register(client, "finder", "nope@example.com")
            resp = await client.post(
                "/api/client/finds",
                headers=finder_headers,
                json={"title": "x", "description": "y", "category": "z"},
            )
        assert resp.status_code == 403

    async def test_zero_balance_proposal(self, api_client, make_client, make_find):
        owner = await make_client()
        finds = [await make_find(owner) for _ in range(get_settings().finder_signup_tokens + 1)]
        async with api_client() as client:
            _, finder_headers = await _register(client, "finder", "broke@example.com")
            payload = {"approach": "a", "price": 10, "timeline": "1d"}
            for find in finds[:-1]:
                resp = await client.post(
                    "/api/proposals", headers=finder_headers, json={**payload, "findId": find.id}
                )
                assert resp.status_code == 201

            payload["findId"] = finds[-1].id
            resp = await client.post("/api/proposals", headers=finder_headers, json=payload)
            assert resp.status_code == 400
            assert resp.json()["message"] == "Insufficient findertokens to submit proposal"

            balance = await client.get("/api/findertokens/balance", headers=finder_headers)
            assert balance.json()["balance"] == 0

    async def test_budget_range_validated(self, api_client):
        async with api_client() as client:
            _, headers = await _register(client, "client", "budget@example.com")
            resp = await client.post(
                "/api/client/finds",
                headers=headers,
                json={
                    "title": "t",
                    "description": "d",
                    "category": "c",
                    "budgetMin": 500,
                    "budgetMax": 100,
                },
            )
        assert resp.status_code == 400


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------


class TestAdmin:
    async def test_category_round_trip(self, api_client, make_admin):
        admin = await make_admin()
        headers = auth_headers(admin)
        async with api_client() as client:
            resp = await client.post(
                "/api/admin/categories",
                headers=headers,
                json={"name": "Antiques", "description": "Old and rare things"},
            )
            assert resp.status_code == 201
            created = resp.json()

            listing = await client.get("/api/admin/categories", headers=headers)
            public = await client.get("/api/categories")

        match = [c for c in listing.json() if c["id"] == created["id"]]
        assert match == [created]
        assert created["name"] == "Antiques"
        assert created["description"] == "Old and rare things"
        assert created["isActive"] is True
        assert [c["name"] for c in public.json()] == ["Antiques"]

    async def test_non_admin_forbidden(self, api_client, make_client):
        user = await make_client()
        async with api_client() as client:
            resp = await client.get("/api/admin/users", headers=auth_headers(user))
        assert resp.status_code == 403

    async def test_ban_requires_reason(self, api_client, make_admin, make_client):
        admin = await make_admin()
        target = await make_client()
        async with api_client() as client:
            resp = await client.post(
                f"/api/admin/users/{target.id}/ban", headers=auth_headers(admin), json={}
            )
        assert resp.status_code == 400
        assert resp.json()["message"] == "Ban reason is required"

    async def test_banned_user_locked_out(self, api_client, make_admin, make_client):
        admin = await make_admin()
        target = await make_client()
        target_headers = auth_headers(target)
        async with api_client() as client:
            resp = await client.post(
                f"/api/admin/users/{target.id}/ban",
                headers=auth_headers(admin),
                json={"reason": "Fraud"},
            )
            assert resp.status_code == 200
            assert resp.json()["isBanned"] is True

            me = await client.get("/api/auth/me", headers=target_headers)
            assert me.status_code == 401

            await client.post(f"/api/admin/users/{target.id}/unban", headers=auth_headers(admin))
            me = await client.get("/api/auth/me", headers=target_headers)
            assert me.status_code == 200

    async def test_settings_and_grants(self, api_client, db_session, make_admin, make_finder):
        from findermeister.services.auth_service import get_finder_by_user_id

        admin = await make_admin()
        finder_user = await make_finder()
        finder = await get_finder_by_user_id(db_session, finder_user.id)
        headers = auth_headers(admin)
        async with api_client() as client:
            resp = await client.put(
                "/api/admin/settings", headers=headers, json={"proposalTokenCost": 2}
            )
            assert resp.json() == {"proposalTokenCost": 2}

            resp = await client.post(
                "/api/admin/token-grants",
                headers=headers,
                json={"finderId": finder.id, "amount": 10, "reason": "Launch bonus"},
            )
            assert resp.status_code == 201

            balance = await client.get(
                "/api/findertokens/balance", headers=auth_headers(finder_user)
            )
            assert balance.json()["balance"] == get_settings().finder_signup_tokens + 10

            resp = await client.post("/api/admin/distribute-monthly-tokens", headers=headers)
            assert resp.json()["distributed"] == 1


# ---------------------------------------------------------------------------
# Strikes
# ---------------------------------------------------------------------------


class TestStrikesApi:
    async def test_offense_catalog(self, api_client, make_client):
        user = await make_client()
        async with api_client() as client:
            resp = await client.get("/api/offenses/finder", headers=auth_headers(user))
            bad = await client.get("/api/offenses/wizard", headers=auth_headers(user))
        assert resp.status_code == 200
        assert {"offense": "Repeated no-shows", "strikeLevel": 2,
                "resolution": "Limited applications for 7 days"} in resp.json()
        assert bad.status_code == 400

    async def test_issue_strike(self, api_client, make_admin, make_finder, email_mock):
        admin = await make_admin()
        finder = await make_finder()
        async with api_client() as client:
            resp = await client.post(
                "/api/admin/strikes",
                headers=auth_headers(admin),
                json={"userId": finder.id, "offenseType": "Repeated no-shows"},
            )
            assert resp.status_code == 201, resp.text
            body = resp.json()

            restrictions = await client.get(
                f"/api/users/{finder.id}/restrictions", headers=auth_headers(finder)
            )

        assert body["strike"]["strikeLevel"] == 1
        assert body["restriction"]["restrictionType"] == "limited_features"
        assert body["training"]["moduleType"] == "communication"
        assert body["consequence"]["restrictionType"] == "limited_features"
        assert restrictions.json()["canApply"] is True
        assert restrictions.json()["strikeLevel"] == 1
        email_mock.notify_strike_issued.assert_awaited_once()

    async def test_invalid_offense_for_role(self, api_client, make_admin, make_client):
        admin = await make_admin()
        target = await make_client()
        async with api_client() as client:
            resp = await client.post(
                "/api/admin/strikes",
                headers=auth_headers(admin),
                json={"userId": target.id, "offenseType": "Impersonation"},
            )
        assert resp.status_code == 400
        assert resp.json()["message"] == 'Invalid offense type "Impersonation" for role "client"'

    async def test_cannot_read_other_users_strikes(self, api_client, make_client):
        user = await make_client()
        other = await make_client()
        async with api_client() as client:
            resp = await client.get(f"/api/users/{other.id}/strikes", headers=auth_headers(user))
        assert resp.status_code == 403

    async def test_appeal_flow(self, api_client, make_admin, make_client):
        admin = await make_admin()
        target = await make_client()
        async with api_client() as client:
            issued = await client.post(
                "/api/admin/strikes",
                headers=auth_headers(admin),
                json={"userId": target.id, "offenseType": "Fake or malicious find"},
            )
            strike_id = issued.json()["strike"]["id"]

            resp = await client.post(
                "/api/disputes",
                headers=auth_headers(target),
                json={"strikeId": strike_id, "description": "This find was legitimate"},
            )
            assert resp.status_code == 201
            dispute = resp.json()

            resp = await client.put(
                f"/api/admin/disputes/{dispute['id']}",
                headers=auth_headers(admin),
                json={"status": "resolved", "resolution": "Verified legitimate"},
            )
            assert resp.status_code == 200

            summary = await client.get(
                f"/api/users/{target.id}/restrictions", headers=auth_headers(target)
            )

        assert summary.json()["restrictions"] == []
        assert summary.json()["strikeLevel"] == 0

    async def test_banned_finder_can_appeal_ban(self, api_client, make_admin, make_finder):
        admin = await make_admin()
        finder = await make_finder()
        finder_headers = auth_headers(finder)
        async with api_client() as client:
            issued = await client.post(
                "/api/admin/strikes",
                headers=auth_headers(admin),
                json={"userId": finder.id, "offenseType": "Impersonation"},
            )
            assert issued.status_code == 201, issued.text
            strike_id = issued.json()["strike"]["id"]

            locked = await client.get("/api/auth/me", headers=finder_headers)
            assert locked.status_code == 401

            strikes = await client.get(f"/api/users/{finder.id}/strikes", headers=finder_headers)
            assert strikes.status_code == 200
            assert [s["id"] for s in strikes.json()] == [strike_id]

            restrictions = await client.get(
                f"/api/users/{finder.id}/restrictions", headers=finder_headers
            )
            assert restrictions.status_code == 200
            assert restrictions.json()["isBanned"] is True

            appeal = await client.post(
                "/api/disputes",
                headers=finder_headers,
                json={"strikeId": strike_id, "description": "Someone else used my name"},
            )
            assert appeal.status_code == 201, appeal.text

            resolved = await client.put(
                f"/api/admin/disputes/{appeal.json()['id']}",
                headers=auth_headers(admin),
                json={"status": "resolved", "resolution": "Identity confirmed"},
            )
            assert resolved.status_code == 200

            me = await client.get("/api/auth/me", headers=finder_headers)

        assert me.status_code == 200
        assert me.json()["user"]["isBanned"] is False

    async def test_banned_user_still_locked_out_of_other_routes(
        self, api_client, make_admin, make_finder
    ):
        admin = await make_admin()
        finder = await make_finder()
        async with api_client() as client:
            await client.post(
                "/api/admin/strikes",
                headers=auth_headers(admin),
                json={"userId": finder.id, "offenseType": "Impersonation"},
            )
            resp = await client.get("/api/finder/proposals", headers=auth_headers(finder))
        assert resp.status_code == 401


# ---------------------------------------------------------------------------
# Internal scheduler
# ---------------------------------------------------------------------------


class TestScheduler:
    async def test_requires_internal_token(self, api_client):
        async with api_client() as client:
            resp = await client.post(
                "/api/internal/scheduler/tick", headers={"X-Internal-Token": "wrong"}
            )
        assert resp.status_code == 401

    async def test_tick(self, api_client):
        async with api_client() as client:
            resp = await client.post(
                "/api/internal/scheduler/tick",
                headers={"X-Internal-Token": get_settings().internal_token},
            )
        assert resp.status_code == 200
        assert resp.json()["ok"] is True
        assert resp.json()["results"]["contracts_auto_released"] == 0


async def test_health(api_client):
    async with api_client() as client:
        resp = await client.get("/health")
    assert resp.json() == {"status": "ok", "service": "findermeister"}
