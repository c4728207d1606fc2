# tests/test_transfers_api.py
import pytest

from app.shared.database.models import InventoryRecord, Product

BASE = "/api/v1/transfers"


@pytest.fixture
def new_request(client, seed, auth_headers):
    def _create(quantity=50, priority="MEDIUM", user_id=None):
        response = client.post(
            BASE,
            json={
                "productId": seed.product_id,
                "fromLocationType": "warehouse",
                "fromLocationId": seed.warehouse_id,
                "toLocationType": "STORE",
                "toLocationId": seed.store_id,
                "quantity": quantity,
                "priority": priority,
                "reason": "Reposición de exhibición"
            },
            headers=auth_headers(user_id or seed.store_manager)
        )
        assert response.status_code == 201, response.text
        return response.json()["request"]
    return _create


def test_create_returns_201_with_actions(client, seed, auth_headers):
    response = client.post(
        BASE,
        json={
            "productId": seed.product_id,
            "fromLocationType": "WAREHOUSE",
            "fromLocationId": seed.warehouse_id,
            "toLocationType": "STORE",
            "toLocationId": seed.store_id,
            "quantity": 50
        },
        headers=auth_headers(seed.gm)
    )

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["request"]["status"] == "PENDING"
    assert body["request"]["requestedQuantity"] == 50
    assert body["request"]["itemSku"] == "ZP-001"
    assert body["request"]["fromLocation"] == {"id": seed.warehouse_id, "type": "WAREHOUSE", "name": "Bodega Central"}
    assert body["availableActions"] == ["approve", "reject", "cancel"]


def test_create_same_location_is_400(client, seed, auth_headers):
    response = client.post(
        BASE,
        json={
            "productId": seed.product_id,
            "fromLocationType": "STORE",
            "fromLocationId": seed.store_id,
            "toLocationType": "STORE",
            "toLocationId": seed.store_id,
            "quantity": 5
        },
        headers=auth_headers(seed.gm)
    )

    assert response.status_code == 400
    assert response.json()["errorCode"] == "VALIDATION_ERROR"
    assert response.json()["success"] is False


def test_requests_without_token_are_rejected(client, seed):
    assert client.get(BASE).status_code in (401, 403)


def test_get_from_other_company_is_404(client, seed, auth_headers, new_request):
    transfer = new_request()

    response = client.get(f"{BASE}/{transfer['id']}", headers=auth_headers(seed.foreign_gm))

    assert response.status_code == 404
    assert response.json()["errorCode"] == "NOT_FOUND"


def test_employee_approval_is_403(client, seed, auth_headers, new_request):
    transfer = new_request()

    response = client.put(
        f"{BASE}/{transfer['id']}/approve",
        json={"approvedQuantity": 10},
        headers=auth_headers(seed.employee)
    )

    assert response.status_code == 403
    assert response.json()["errorCode"] == "PERMISSION_DENIED"


def test_second_reject_is_409(client, seed, auth_headers, new_request):
    transfer = new_request()
    url = f"{BASE}/{transfer['id']}/reject"

    first = client.put(url, json={"reason": "Sin presupuesto"}, headers=auth_headers(seed.gm))
    second = client.put(url, json={"reason": "Sin presupuesto"}, headers=auth_headers(seed.gm))

    assert first.status_code == 200
    assert first.json()["request"]["rejectionReason"] == "Sin presupuesto"
    assert second.status_code == 409
    assert second.json()["errorCode"] == "STATE_CONFLICT"


def test_insufficient_stock_is_409(client, seed, auth_headers, new_request):
    first = new_request(quantity=60)
    second = new_request(quantity=60)

    ok = client.put(f"{BASE}/{first['id']}/approve", json={"approvedQuantity": 60}, headers=auth_headers(seed.gm))
    short = client.put(f"{BASE}/{second['id']}/approve", json={"approvedQuantity": 60}, headers=auth_headers(seed.gm))

    assert ok.status_code == 200
    assert short.status_code == 409
    assert short.json()["errorCode"] == "INSUFFICIENT_STOCK"
    assert short.json()["details"]["available"] == 40


def test_if_match_with_stale_version_is_409(client, seed, auth_headers, new_request):
    transfer = new_request()
    url = f"{BASE}/{transfer['id']}/approve"

    response = client.put(
        url,
        json={"approvedQuantity": 10},
        headers=auth_headers(seed.gm, {"If-Match": f'"{transfer["version"] + 1}"'})
    )

    assert response.status_code == 409


def test_idempotency_key_replay_returns_same_state(client, seed, auth_headers, new_request):
    transfer = new_request(quantity=30)
    url = f"{BASE}/{transfer['id']}/approve"
    headers = auth_headers(seed.gm, {"Idempotency-Key": "approve-1"})

    first = client.put(url, json={"approvedQuantity": 30}, headers=headers)
    again = client.put(url, json={"approvedQuantity": 30}, headers=headers)

    assert first.status_code == 200
    assert again.status_code == 200
    assert again.json()["request"]["version"] == first.json()["request"]["version"]
    assert again.json()["availableActions"] == ["cancel", "markReady"]


def test_full_flow_over_http(client, seed, auth_headers, new_request):
    transfer = new_request(quantity=20)
    url = f"{BASE}/{transfer['id']}"

    assert client.put(f"{url}/approve", json={"approvedQuantity": 20}, headers=auth_headers(seed.gm)).status_code == 200
    assert client.put(
        f"{url}/mark-ready", json={"packedBy": "Luis"}, headers=auth_headers(seed.warehouse_manager)
    ).status_code == 200

    pickup = client.put(
        f"{url}/pickup",
        json={"carrierName": "Transportes Ruiz", "carrierPhone": "3001234567"},
        headers=auth_headers(seed.keeper)
    )
    assert pickup.status_code == 200
    token = pickup.json()["deliveryQRCode"]
    assert token

    deliver = client.put(
        f"{url}/deliver", json={"conditionOnArrival": "GOOD"}, headers=auth_headers(seed.store_manager)
    )
    assert deliver.json()["availableActions"] == ["receive"]

    receive = client.put(
        f"{url}/receive",
        json={"receivedQuantity": 20, "receiverName": "Ana", "deliveryQRCode": token},
        headers=auth_headers(seed.store_manager)
    )
    assert receive.status_code == 200
    assert receive.json()["request"]["status"] == "COMPLETED"

    stock = client.get(
        "/api/v1/inventory/stock",
        params={"locationType": "STORE", "locationId": seed.store_id},
        headers=auth_headers(seed.gm)
    )
    assert stock.json()["records"][0]["currentQuantity"] == 20


def test_send_endpoint_approves_and_dispatches(client, seed, auth_headers, new_request):
    transfer = new_request(quantity=10)

    response = client.post(
        f"{BASE}/{transfer['id']}/send",
        json={"approvedQuantity": 10, "carrierName": "Moto Express"},
        headers=auth_headers(seed.gm)
    )

    assert response.status_code == 200
    assert response.json()["request"]["status"] == "IN_TRANSIT"
    assert response.json()["deliveryQRCode"]


def test_send_retried_with_same_key_is_200(client, seed, auth_headers, new_request):
    transfer = new_request(quantity=10)
    url = f"{BASE}/{transfer['id']}/send"
    headers = auth_headers(seed.gm, {"Idempotency-Key": "send-1"})
    body = {"approvedQuantity": 10, "carrierName": "Moto Express"}

    first = client.post(url, json=body, headers=headers)
    again = client.post(url, json=body, headers=headers)

    assert again.status_code == 200
    assert again.json()["request"]["status"] == "IN_TRANSIT"
    assert again.json()["request"]["version"] == first.json()["request"]["version"]


def test_list_has_pagination_shape(client, seed, auth_headers, new_request):
    for quantity in (1, 2, 3):
        new_request(quantity=quantity)

    response = client.get(BASE, params={"page": 0, "size": 2}, headers=auth_headers(seed.gm))

    assert response.status_code == 200
    body = response.json()
    assert [item["transfer"]["requestedQuantity"] for item in body["requests"]] == [3, 2]
    assert body["pagination"] == {
        "currentPage": 0,
        "pageSize": 2,
        "totalElements": 3,
        "totalPages": 2,
        "hasNext": True,
        "hasPrevious": False
    }


def test_list_filters_by_status(client, seed, auth_headers, new_request):
    rejected = new_request()
    new_request()
    client.put(f"{BASE}/{rejected['id']}/reject", json={"reason": "No"}, headers=auth_headers(seed.gm))

    response = client.get(BASE, params={"status": "REJECTED"}, headers=auth_headers(seed.gm))

    assert [item["transfer"]["id"] for item in response.json()["requests"]] == [rejected["id"]]


def test_pending_approval_is_sorted_by_priority(client, seed, auth_headers, new_request):
    low = new_request(priority="LOW")
    urgent = new_request(priority="URGENT")

    response = client.get(f"{BASE}/pending-approval", headers=auth_headers(seed.gm))

    assert response.status_code == 200
    assert [item["id"] for item in response.json()["requests"]] == [urgent["id"], low["id"]]
    assert response.json()["count"] == 2


def test_availability_endpoint(client, seed, auth_headers):
    response = client.get(
        f"{BASE}/availability",
        params={"locationType": "WAREHOUSE", "locationId": seed.warehouse_id, "productId": seed.product_id},
        headers=auth_headers(seed.gm)
    )

    assert response.status_code == 200
    assert response.json()["availableForTransfer"] == 100


def test_history_endpoint(client, seed, auth_headers, new_request):
    new_request()

    response = client.get(
        f"{BASE}/history", params={"locationId": seed.store_id}, headers=auth_headers(seed.store_manager)
    )

    assert response.status_code == 200
    assert response.json()["count"] == 1


def search(client, headers, **params):
    return client.get(f"{BASE}/products", params=params, headers=headers)


def test_product_search_needs_exactly_one_location(client, seed, auth_headers):
    headers = auth_headers(seed.gm)

    neither = search(client, headers, query="zapato")
    both = search(client, headers, query="zapato", storeId=seed.store_id, warehouseId=seed.warehouse_id)

    assert neither.status_code == 400
    assert neither.json()["errorCode"] == "VALIDATION_ERROR"
    assert both.status_code == 400
    assert both.json()["errorCode"] == "VALIDATION_ERROR"


def test_product_search_reports_availability_per_product(client, db, seed, auth_headers, new_request):
    db.add(Product(company_id=seed.company_id, sku="CM-010", name="Camiseta Algodón"))
    db.commit()
    shirt = db.query(Product).filter(Product.sku == "CM-010").one()
    client.post(
        "/api/v1/inventory/stock",
        json={"locationType": "WAREHOUSE", "locationId": seed.warehouse_id, "productId": shirt.id, "quantity": 30},
        headers=auth_headers(seed.gm)
    )
    transfer = new_request(quantity=60)
    client.put(f"{BASE}/{transfer['id']}/approve", json={"approvedQuantity": 60}, headers=auth_headers(seed.gm))

    everything = search(client, auth_headers(seed.gm), warehouseId=seed.warehouse_id)
    by_sku = search(client, auth_headers(seed.gm), warehouseId=seed.warehouse_id, query="zp-0")

    assert everything.status_code == 200
    assert [item["sku"] for item in everything.json()["products"]] == ["ZP-001", "CM-010"]
    assert everything.json()["pagination"]["totalElements"] == 2
    assert everything.json()["filters"]["fromLocationType"] == "WAREHOUSE"

    products = by_sku.json()["products"]
    assert len(products) == 1
    assert products[0]["quantity"] == 100
    assert products[0]["reserved"] == 60
    assert products[0]["inTransit"] == 0
    assert products[0]["availableForTransfer"] == 40


def test_product_search_never_reports_negative_availability(client, db, seed, auth_headers):
    record = db.query(InventoryRecord).filter(
        InventoryRecord.location_id == seed.warehouse_id,
        InventoryRecord.product_id == seed.product_id
    ).one()
    record.reserved_for_sales = 130
    db.commit()

    response = search(client, auth_headers(seed.gm), warehouseId=seed.warehouse_id, query="zapato")

    product = response.json()["products"][0]
    assert product["reserved"] == 130
    assert product["availableForTransfer"] == 0


def test_product_search_in_other_company_location_is_404(client, seed, auth_headers):
    response = search(client, auth_headers(seed.gm), warehouseId=seed.foreign_warehouse_id)

    assert response.status_code == 404
