# Overview: Pytest coverage for the stock HTTP API.

from conftest import reload_equipment


class TestStockReadsApi:

    def test_overview(self, client, admin_headers, equipment_a):
        resp = client.get("/api/stock", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json["totals"]["total_stock"] == 5
        assert resp.json["equipments"][0]["available_stock"] == 5

    def test_detail_and_movements(self, client, admin_headers, equipment_a):
        resp = client.get(f"/api/stock/{equipment_a.id}", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json["equipment"]["id"] == equipment_a.id

        resp = client.get(f"/api/stock/{equipment_a.id}/movements?type=PURCHASE", headers=admin_headers)
        assert resp.status_code == 200
        assert [m["type"] for m in resp.json["movements"]] == ["PURCHASE"]

        resp = client.get(f"/api/stock/{equipment_a.id}/movements?type=TELEPORT", headers=admin_headers)
        assert resp.status_code == 400

    def test_low_stock(self, client, admin_headers, equipment_a):
        resp = client.get("/api/stock/low-stock", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json["stats"]["total"] == 0

    def test_alerts(self, client, admin_headers, operator_headers, equipment_a):
        client.post(f"/api/stock/{equipment_a.id}/movement", json={
            "type": "MAINTENANCE_OUT", "quantity": 1, "reason": "Revisao",
        }, headers=admin_headers)

        resp = client.get("/api/stock/alerts", headers=operator_headers)
        assert resp.status_code == 200
        assert [a["type"] for a in resp.json["alerts"]] == ["MAINTENANCE"]
        assert resp.json["alerts"][0]["equipment"]["name"] == "Betoneira 400L"
        assert resp.json["summary"]["in_maintenance_count"] == 1
        assert resp.json["summary"]["total_alerts"] == 1

    def test_availability(self, client, admin_headers, customer_a, equipment_a):
        created = client.post("/api/bookings", json={
            "customer_id": customer_a.id,
            "start_date": "2025-01-10",
            "end_date": "2025-01-12",
            "items": [{"equipment_id": equipment_a.id, "quantity": 3}],
        }, headers=admin_headers)
        booking_id = created.json["booking"]["id"]

        resp = client.get(
            f"/api/stock/{equipment_a.id}/availability"
            "?start_date=2025-01-12&end_date=2025-01-15&quantity=3",
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert resp.json["available"] is False
        assert resp.json["available_for_period"] == 2
        assert resp.json["conflicts"][0]["booking_id"] == booking_id

        resp = client.get(
            f"/api/stock/{equipment_a.id}/availability"
            f"?start_date=2025-01-12&end_date=2025-01-15&quantity=3&exclude_booking_id={booking_id}",
            headers=admin_headers,
        )
        assert resp.json["available"] is True

    def test_availability_requires_dates(self, client, admin_headers, equipment_a):
        base = f"/api/stock/{equipment_a.id}/availability"
        assert client.get(base, headers=admin_headers).status_code == 400
        assert client.get(
            f"{base}?start_date=2025-01-12&end_date=2025-01-10", headers=admin_headers
        ).status_code == 400
        assert client.get(
            f"{base}?start_date=hoje&end_date=2025-01-10", headers=admin_headers
        ).status_code == 400


class TestStockWritesApi:

    def test_record_movement(self, client, admin_headers, equipment_a):
        resp = client.post(f"/api/stock/{equipment_a.id}/movement", json={
            "type": "MAINTENANCE_OUT", "quantity": 2, "reason": "Revisao anual",
        }, headers=admin_headers)
        assert resp.status_code == 201
        assert resp.json["movement"]["type"] == "MAINTENANCE_OUT"
        assert resp.json["equipment"]["maintenance_stock"] == 2

    def test_movement_conflict(self, client, admin_headers, equipment_a):
        resp = client.post(f"/api/stock/{equipment_a.id}/movement", json={
            "type": "LOSS", "quantity": 9,
        }, headers=admin_headers)
        assert resp.status_code == 409
        assert reload_equipment(equipment_a.id).total_stock == 5

    def test_movement_validation(self, client, admin_headers, equipment_a):
        url = f"/api/stock/{equipment_a.id}/movement"
        assert client.post(url, json={"type": "PURCHASE", "quantity": 0}, headers=admin_headers).status_code == 400
        assert client.post(url, json={"type": "GIFT", "quantity": 1}, headers=admin_headers).status_code == 400
        assert client.post(url, json={"type": "ADJUSTMENT", "quantity": -1}, headers=admin_headers).status_code == 201

    def test_adjust_total(self, client, admin_headers, equipment_a):
        url = f"/api/stock/{equipment_a.id}/adjust"
        resp = client.put(url, json={"new_total_stock": 7, "reason": "Contagem"}, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json["equipment"]["total_stock"] == 7
        assert resp.json["movement"]["quantity"] == 2

        assert client.put(url, json={"new_total_stock": 7}, headers=admin_headers).status_code == 400
        assert client.put(url, json={"new_total_stock": -1, "reason": "x"}, headers=admin_headers).status_code == 400

    def test_unknown_equipment(self, client, admin_headers, db_session):
        assert client.get("/api/stock/99999", headers=admin_headers).status_code == 404
        resp = client.post("/api/stock/99999/movement", json={"type": "PURCHASE", "quantity": 1},
                           headers=admin_headers)
        assert resp.status_code == 404

    def test_booking_movement_types_rejected(self, client, admin_headers, customer_a, equipment_a):
        client.post("/api/bookings", json={
            "customer_id": customer_a.id,
            "start_date": "2025-01-10",
            "end_date": "2025-01-12",
            "items": [{"equipment_id": equipment_a.id, "quantity": 2}],
        }, headers=admin_headers)

        url = f"/api/stock/{equipment_a.id}/movement"
        for movement_type in ("RENTAL_OUT", "RENTAL_RETURN"):
            resp = client.post(url, json={"type": movement_type, "quantity": 1}, headers=admin_headers)
            assert resp.status_code == 400, movement_type
            assert resp.json["field"] == "type"

        equipment = reload_equipment(equipment_a.id)
        assert (equipment.available_stock, equipment.reserved_stock) == (3, 2)

        resp = client.get(f"/api/stock/{equipment_a.id}/movements?type=RENTAL_OUT", headers=admin_headers)
        assert resp.status_code == 200
        assert [m["quantity"] for m in resp.json["movements"]] == [2]
