"""
HTTP flow tests.

Verifies:
- Protected endpoints return 401 without a token
- Signup/sign-in set the session cookie; sign-out clears it
- Cart, checkout and order endpoints end to end
- Error responses carry the right status codes
"""

import pytest

from storefront.services import order_service

from conftest import PASSWORD, auth_headers, token_for


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without a token."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/admin/users"),
            ("PUT", "/api/admin/users/1/permissions"),
            ("GET", "/api/admin/reconciliations"),
            ("GET", "/api/cart"),
            ("POST", "/api/cart/items"),
            ("DELETE", "/api/cart/items/1"),
            ("POST", "/api/items"),
            ("PATCH", "/api/items/1"),
            ("DELETE", "/api/items/1"),
            ("POST", "/api/orders/checkout"),
            ("GET", "/api/orders"),
            ("GET", "/api/orders/1"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_bad_token_is_401(self, client, db_session):
        resp = client.get("/api/cart", headers=auth_headers("not.a.token"))
        assert resp.status_code == 401


class TestAuthFlow:
    def test_signup_signin_me_signout(self, client, db_session):
        resp = client.post("/api/auth/signup", json={
            "email": "New@Example.com", "name": "New", "password": PASSWORD,
        })
        assert resp.status_code == 201
        assert resp.json["user"]["email"] == "new@example.com"
        assert resp.json["user"]["permissions"] == ["USER"]
        assert "token=" in resp.headers["Set-Cookie"]
        assert "HttpOnly" in resp.headers["Set-Cookie"]

        resp = client.post("/api/auth/signin", json={"email": "new@example.com", "password": PASSWORD})
        assert resp.status_code == 200
        token = resp.json["token"]

        resp = client.get("/api/auth/me", headers=auth_headers(token))
        assert resp.json["user"]["email"] == "new@example.com"

        resp = client.post("/api/auth/signout")
        assert resp.json == {"message": "Goodbye!"}
        assert "token=;" in resp.headers["Set-Cookie"]

        client.delete_cookie("token")
        assert client.get("/api/auth/me").json == {"user": None}

    def test_cookie_authenticates(self, client, db_session, user):
        client.set_cookie("token", token_for(user))
        assert client.get("/api/cart").status_code == 200
        client.delete_cookie("token")

    def test_duplicate_signup(self, client, db_session, user):
        resp = client.post("/api/auth/signup", json={
            "email": user.email, "name": "Dup", "password": PASSWORD,
        })
        assert resp.status_code == 409

    def test_weak_password(self, client, db_session):
        resp = client.post("/api/auth/signup", json={"email": "a@b.co", "name": "A", "password": "weak"})
        assert resp.status_code == 400

    def test_bad_credentials_share_a_message(self, client, db_session, user):
        wrong_password = client.post("/api/auth/signin", json={"email": user.email, "password": "Nope123!!"})
        unknown_email = client.post("/api/auth/signin", json={"email": "ghost@example.com", "password": PASSWORD})
        assert wrong_password.status_code == unknown_email.status_code == 401
        assert wrong_password.json == unknown_email.json

    def test_reset_round_trip(self, client, db_session, user, mailer):
        resp = client.post("/api/auth/request-reset", json={"email": user.email})
        assert resp.status_code == 200
        assert "token" not in resp.json
        reset_token = mailer.sent[-1]["html"].split("resetToken=")[1].split('"')[0]

        resp = client.post("/api/auth/reset-password", json={
            "reset_token": reset_token, "password": "Changed123!", "confirm_password": "Changed123!",
        })
        assert resp.status_code == 200
        assert resp.json["user"]["id"] == user.id

        resp = client.post("/api/auth/reset-password", json={
            "reset_token": reset_token, "password": "Changed123!", "confirm_password": "Changed123!",
        })
        assert resp.status_code == 400


class TestAdmin:
    def test_plain_user_forbidden(self, client, db_session, user):
        resp = client.get("/api/admin/users", headers=auth_headers(token_for(user)))
        assert resp.status_code == 403
        assert set(resp.json["required_permissions"]) == {"ADMIN", "PERMISSIONUPDATE"}

    def test_admin_updates_permissions(self, client, db_session, admin, user):
        resp = client.put(
            f"/api/admin/users/{user.id}/permissions",
            json={"permissions": ["USER", "ITEMDELETE"]},
            headers=auth_headers(token_for(admin)),
        )
        assert resp.status_code == 200
        assert resp.json["user"]["permissions"] == ["ITEMDELETE", "USER"]

    def test_unknown_permission(self, client, db_session, admin, user):
        resp = client.put(
            f"/api/admin/users/{user.id}/permissions",
            json={"permissions": ["ROOT"]},
            headers=auth_headers(token_for(admin)),
        )
        assert resp.status_code == 400


class TestShoppingFlow:
    def test_cart_checkout_orders(self, client, db_session, user, other_user, make_item, gateway):
        headers = auth_headers(token_for(user))
        item = make_item(other_user, title="Kettle", price=4500)

        assert client.post("/api/cart/items", json={"item_id": item.id}, headers=headers).status_code == 200
        resp = client.post("/api/cart/items", json={"item_id": item.id}, headers=headers)
        assert resp.json["cart_item"]["quantity"] == 2

        resp = client.get("/api/cart", headers=headers)
        assert resp.json["total"] == 9000

        resp = client.post(
            "/api/orders/checkout",
            json={"token": "tok_visa"},
            headers={**headers, "Idempotency-Key": "client-attempt-1"},
        )
        assert resp.status_code == 201
        order = resp.json["order"]
        assert order["total"] == 9000
        assert order["items"][0]["title"] == "Kettle"

        assert client.get("/api/cart", headers=headers).json["items"] == []
        assert [o["id"] for o in client.get("/api/orders", headers=headers).json["orders"]] == [order["id"]]
        assert client.get(f"/api/orders/{order['id']}", headers=headers).status_code == 200

    def test_other_users_order_is_forbidden(self, client, db_session, user, other_user, admin, make_item):
        item = make_item(other_user)
        client.post("/api/cart/items", json={"item_id": item.id}, headers=auth_headers(token_for(user)))
        order_id = client.post(
            "/api/orders/checkout", json={"token": "tok_visa"}, headers=auth_headers(token_for(user)),
        ).json["order"]["id"]

        assert client.get(f"/api/orders/{order_id}", headers=auth_headers(token_for(other_user))).status_code == 403
        assert client.get(f"/api/orders/{order_id}", headers=auth_headers(token_for(admin))).status_code == 200
        assert client.get("/api/orders/999999", headers=auth_headers(token_for(admin))).status_code == 404

    def test_empty_cart(self, client, db_session, user, gateway):
        resp = client.post("/api/orders/checkout", json={"token": "tok_visa"}, headers=auth_headers(token_for(user)))
        assert resp.status_code == 400
        assert gateway.charge_calls == 0

    def test_decline(self, client, db_session, user, other_user, make_item, gateway):
        headers = auth_headers(token_for(user))
        client.post("/api/cart/items", json={"item_id": make_item(other_user).id}, headers=headers)
        gateway.mode = "decline"

        resp = client.post("/api/orders/checkout", json={"token": "tok_chargeDeclined"}, headers=headers)
        assert resp.status_code == 402

    def test_ambiguous_payment_returns_attempt_id(self, client, db_session, user, other_user, make_item, gateway):
        headers = auth_headers(token_for(user))
        client.post("/api/cart/items", json={"item_id": make_item(other_user, price=800).id}, headers=headers)
        gateway.mode = "timeout_lost"

        resp = client.post("/api/orders/checkout", json={"token": "tok_visa"}, headers=headers)
        assert resp.status_code == 402
        assert resp.json["retry_with_same_attempt_id"] is True
        attempt_id = resp.json["attempt_id"]
        assert attempt_id

        gateway.mode = "ok"
        resp = client.post(
            "/api/orders/checkout",
            json={"token": "tok_visa", "attempt_id": attempt_id},
            headers=headers,
        )
        assert resp.status_code == 201
        assert len(gateway.charges) == 1

    def test_pending_confirmation_hides_charge(self, client, db_session, user, other_user, make_item, monkeypatch):
        headers = auth_headers(token_for(user))
        client.post("/api/cart/items", json={"item_id": make_item(other_user).id}, headers=headers)

        def boom(**kwargs):
            raise RuntimeError("order table unavailable")

        monkeypatch.setattr(order_service, "materialize_order", boom)
        resp = client.post("/api/orders/checkout", json={"token": "tok_visa"}, headers=headers)

        assert resp.status_code == 202
        assert resp.json["status"] == "RECONCILIATION_PENDING"
        assert "ch_" not in resp.get_data(as_text=True)

    def test_remove_foreign_cart_row(self, client, db_session, user, other_user, make_item):
        item = make_item(user)
        resp = client.post("/api/cart/items", json={"item_id": item.id}, headers=auth_headers(token_for(other_user)))
        row_id = resp.json["cart_item"]["id"]

        resp = client.delete(f"/api/cart/items/{row_id}", headers=auth_headers(token_for(user)))
        assert resp.status_code == 403


class TestItemsEndpoints:
    def test_crud(self, client, db_session, user):
        headers = auth_headers(token_for(user))
        resp = client.post("/api/items", json={"title": "Desk", "price": 15000}, headers=headers)
        assert resp.status_code == 201
        item_id = resp.json["item"]["id"]

        assert client.get(f"/api/items/{item_id}").json["item"]["title"] == "Desk"
        assert client.patch(f"/api/items/{item_id}", json={"price": 14000}, headers=headers).json["item"]["price"] == 14000
        assert client.get("/api/items?page=1&per_page=10").json["pagination"]["total"] == 1
        assert client.delete(f"/api/items/{item_id}", headers=headers).status_code == 200
        assert client.get(f"/api/items/{item_id}").status_code == 404


class TestHealth:
    def test_health(self, client, db_session):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json["checks"]["database"]["status"] == "healthy"
