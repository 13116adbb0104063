"""
认证、租户与模块开通 API 测试
"""
from hotel_module.config import settings
from hotel_module.security.auth import create_access_token


class TestAuthentication:

    def test_missing_token(self, client):
        response = client.get("/rooms", headers={"x-tenant-id": "grand-hotel"})
        assert response.status_code == 401
        body = response.json()
        assert body["success"] is False
        assert body["code"] == "unauthorized"

    def test_invalid_token(self, client):
        response = client.get("/rooms", headers={
            "Authorization": "Bearer not-a-token",
            "x-tenant-id": "grand-hotel"
        })
        assert response.status_code == 401

    def test_unknown_role(self, client):
        token = create_access_token("u-1", "housekeeper", tenant_id="grand-hotel")
        response = client.get("/rooms", headers={
            "Authorization": f"Bearer {token}",
            "x-tenant-id": "grand-hotel"
        })
        assert response.status_code == 401

    def test_role_forbidden(self, client, user_headers):
        response = client.post("/rooms", headers=user_headers, json={
            "number": "201", "type": "Single", "price_per_night": "100", "floor": 2
        })
        assert response.status_code == 403
        assert response.json()["code"] == "forbidden"


class TestTenancy:

    def test_missing_tenant_header(self, client, admin_headers):
        headers = {"Authorization": admin_headers["Authorization"]}
        response = client.get("/rooms", headers=headers)
        assert response.status_code == 422
        body = response.json()
        assert body["success"] is False
        assert "x-tenant-id" in body["errors"]

    def test_token_bound_to_other_tenant(self, client, admin_headers):
        headers = dict(admin_headers, **{"x-tenant-id": "seaside-inn"})
        response = client.get("/rooms", headers=headers)
        assert response.status_code == 403

    def test_tenants_are_isolated(self, client, admin_headers, other_tenant_headers, sample_rooms):
        own = client.get("/rooms", headers=admin_headers).json()["data"]
        other = client.get("/rooms", headers=other_tenant_headers).json()["data"]
        assert len(own) == 2
        assert other == []

        room_id = sample_rooms[0].id
        assert client.get(f"/rooms/{room_id}", headers=other_tenant_headers).status_code == 404

    def test_silo_mode_ignores_header(self, client, monkeypatch, sample_rooms):
        monkeypatch.setattr(settings, "APP_TENANT_ID", "grand-hotel")
        token = create_access_token("admin-1", "admin")
        response = client.get("/rooms", headers={
            "Authorization": f"Bearer {token}",
            "x-tenant-id": "seaside-inn"
        })
        assert response.status_code == 200
        assert len(response.json()["data"]) == 2


class TestModuleSubscription:

    def test_module_not_subscribed(self, client, admin_headers, monkeypatch):
        monkeypatch.setattr(settings, "APP_SUBSCRIBED_MODULES", "restaurant,spa")
        response = client.get("/rooms", headers=admin_headers)
        assert response.status_code == 403

    def test_module_subscribed(self, client, admin_headers, monkeypatch):
        monkeypatch.setattr(settings, "APP_SUBSCRIBED_MODULES", "restaurant, Hotel")
        assert client.get("/rooms", headers=admin_headers).status_code == 200

    def test_token_modules_checked(self, client):
        token = create_access_token("admin-1", "admin", tenant_id="grand-hotel", modules=["spa"])
        response = client.get("/rooms", headers={
            "Authorization": f"Bearer {token}",
            "x-tenant-id": "grand-hotel"
        })
        assert response.status_code == 403

    def test_token_with_empty_module_list(self, client):
        token = create_access_token("admin-1", "admin", tenant_id="grand-hotel", modules=[])
        response = client.get("/rooms", headers={
            "Authorization": f"Bearer {token}",
            "x-tenant-id": "grand-hotel"
        })
        assert response.status_code == 403
        assert response.json()["errors"] == {"module": "hotel"}

    def test_token_listing_hotel(self, client):
        token = create_access_token("admin-1", "admin", tenant_id="grand-hotel", modules=["Hotel", "spa"])
        response = client.get("/rooms", headers={
            "Authorization": f"Bearer {token}",
            "x-tenant-id": "grand-hotel"
        })
        assert response.status_code == 200


class TestHealth:

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "healthy"}
