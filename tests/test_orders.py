# tests/test_orders.py
from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session

from main_models import Service
from services import calculate_earnings, is_valid_wheel_position


def order_payload(client_id, lines, worker_id=None, **extra):
    payload = {
        "client_id": client_id,
        "vehicle_number": "а123вс77",
        "payment_method": "cash",
        "services": lines,
    }
    if worker_id is not None:
        payload["worker_id"] = worker_id
    payload.update(extra)
    return payload


def line(service_id, price, position="left_1"):
    return {"service_id": service_id, "wheel_position": position, "price": price,
            "service_description": "Шиномонтаж"}


@pytest.fixture
def second_service(session: Session, sample_contract):
    service = Service(name="Шиномонтаж", price=200, contract_id=sample_contract.id)
    session.add(service)
    session.commit()
    session.refresh(service)
    return service


def test_worker_creates_order_total_is_sum_of_lines(client: TestClient, sample_client, sample_service, second_service, worker_headers):
    response = client.post("/worker/orders", json=order_payload(sample_client.id, [
        line(sample_service.id, 100, "left_1"),
        line(second_service.id, 200, "right_1"),
    ]), headers=worker_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["total_amount"] == 300
    assert data["status"] == "запланирован"
    assert data["vehicle_number"] == "А123ВС77"
    assert len(data["services"]) == 2


def test_worker_cannot_create_order_for_another_worker(client: TestClient, sample_client, sample_service, sample_worker, worker_headers):
    response = client.post("/worker/orders", json=order_payload(
        sample_client.id, [line(sample_service.id, 100)], worker_id=999), headers=worker_headers)
    assert response.status_code == 200
    assert response.json()["worker_id"] == sample_worker.id


def test_worker_sees_only_own_orders(client: TestClient, sample_client, sample_service, worker_headers):
    client.post("/worker/orders", json=order_payload(sample_client.id, [line(sample_service.id, 100)]),
                headers=worker_headers)
    response = client.get("/worker/orders", headers=worker_headers)
    assert response.status_code == 200
    assert len(response.json()) == 1


def test_manager_must_choose_worker(client: TestClient, sample_client, sample_service, manager_headers):
    response = client.post("/manager/orders", json=order_payload(
        sample_client.id, [line(sample_service.id, 100)]), headers=manager_headers)
    assert response.status_code == 400


def test_manager_unknown_worker(client: TestClient, sample_client, sample_service, manager_headers):
    response = client.post("/manager/orders", json=order_payload(
        sample_client.id, [line(sample_service.id, 100)], worker_id=404), headers=manager_headers)
    assert response.status_code == 404


@pytest.mark.parametrize("lines,extra", [
    ([], {}),
    ([line(1, 0)], {}),
    ([line(1, 100, "middle_5")], {}),
    ([line(0, 100)], {}),
    ([line(1, 100)], {"payment_method": "bitcoin"}),
    ([line(1, 100)], {"vehicle_number": "  "}),
])
def test_order_validation(client: TestClient, sample_client, sample_service, sample_worker, manager_headers, lines, extra):
    response = client.post("/manager/orders", json=order_payload(
        sample_client.id, lines, worker_id=sample_worker.id, **extra), headers=manager_headers)
    assert response.status_code == 400
    assert "detail" in response.json()


def test_order_is_atomic_when_line_fails(client: TestClient, sample_client, sample_service, sample_worker, manager_headers):
    response = client.post("/manager/orders", json=order_payload(sample_client.id, [
        line(sample_service.id, 100, "left_1"),
        line(9999, 200, "right_1"),
    ], worker_id=sample_worker.id), headers=manager_headers)
    assert response.status_code == 404

    orders = client.get("/manager/orders", headers=manager_headers).json()
    assert orders == []


def test_price_change_does_not_touch_existing_orders(client: TestClient, sample_client, sample_service, sample_contract, sample_worker, manager_headers):
    created = client.post("/manager/orders", json=order_payload(
        sample_client.id, [line(sample_service.id, 100)], worker_id=sample_worker.id), headers=manager_headers).json()

    response = client.put(f"/manager/services/{sample_service.id}", json={
        "name": sample_service.name, "price": 500, "contract_id": sample_contract.id,
    }, headers=manager_headers)
    assert response.status_code == 200
    assert response.json()["price"] == 500

    order = client.get(f"/manager/orders/{created['id']}", headers=manager_headers).json()
    assert order["services"][0]["price"] == 100
    assert order["total_amount"] == 100


def test_update_replaces_line_items(client: TestClient, sample_client, sample_service, second_service, sample_worker, manager_headers):
    created = client.post("/manager/orders", json=order_payload(sample_client.id, [
        line(sample_service.id, 100, "left_1"),
        line(second_service.id, 200, "right_1"),
    ], worker_id=sample_worker.id), headers=manager_headers).json()

    response = client.put(f"/manager/orders/{created['id']}", json=order_payload(sample_client.id, [
        line(second_service.id, 250, "left_2_inner"),
    ], worker_id=sample_worker.id, payment_method="card"), headers=manager_headers)
    assert response.status_code == 200
    data = response.json()
    assert len(data["services"]) == 1
    assert data["services"][0]["wheel_position"] == "left_2_inner"
    assert data["total_amount"] == 250
    assert data["payment_method"] == "card"


def test_update_is_atomic_when_line_fails(client: TestClient, sample_client, sample_service, second_service, sample_worker, manager_headers):
    created = client.post("/manager/orders", json=order_payload(sample_client.id, [
        line(sample_service.id, 50, "left_1"),
        line(second_service.id, 100, "right_1"),
    ], worker_id=sample_worker.id), headers=manager_headers).json()

    response = client.put(f"/manager/orders/{created['id']}", json=order_payload(sample_client.id, [
        line(sample_service.id, 300, "left_2"),
        line(9999, 200, "right_2"),
    ], worker_id=sample_worker.id, payment_method="card"), headers=manager_headers)
    assert response.status_code == 404

    order = client.get(f"/manager/orders/{created['id']}", headers=manager_headers).json()
    assert order["total_amount"] == 150
    assert order["payment_method"] == "cash"
    assert len(order["services"]) == 2
    assert {s["wheel_position"] for s in order["services"]} == {"left_1", "right_1"}


def test_order_timestamps_are_stored(client: TestClient, sample_client, sample_service, sample_worker, manager_headers):
    response = client.post("/manager/orders", json=order_payload(
        sample_client.id, [line(sample_service.id, 100)], worker_id=sample_worker.id), headers=manager_headers)
    assert response.status_code == 200
    data = response.json()
    created_at = datetime.fromisoformat(data["created_at"])
    assert abs(created_at.replace(tzinfo=None) - datetime.utcnow()) < timedelta(minutes=5)
    assert data["updated_at"] is not None


def test_update_missing_order(client: TestClient, sample_client, sample_service, sample_worker, manager_headers):
    response = client.put("/manager/orders/777", json=order_payload(
        sample_client.id, [line(sample_service.id, 100)], worker_id=sample_worker.id), headers=manager_headers)
    assert response.status_code == 404


def test_status_moves_forward_only(client: TestClient, sample_client, sample_service, sample_worker, manager_headers):
    created = client.post("/manager/orders", json=order_payload(
        sample_client.id, [line(sample_service.id, 100)], worker_id=sample_worker.id), headers=manager_headers).json()
    url = f"/manager/orders/{created['id']}/status"

    response = client.patch(url, json={"status": "выполняется"}, headers=manager_headers)
    assert response.status_code == 200
    assert response.json()["status"] == "выполняется"

    # повтор текущего статуса ничего не меняет
    assert client.patch(url, json={"status": "выполняется"}, headers=manager_headers).status_code == 200

    response = client.patch(url, json={"status": "запланирован"}, headers=manager_headers)
    assert response.status_code == 400

    response = client.patch(url, json={"status": "выполнен"}, headers=manager_headers)
    assert response.json()["status"] == "выполнен"


def test_delete_order(client: TestClient, sample_client, sample_service, sample_worker, manager_headers):
    created = client.post("/manager/orders", json=order_payload(
        sample_client.id, [line(sample_service.id, 100)], worker_id=sample_worker.id), headers=manager_headers).json()
    assert client.delete(f"/manager/orders/{created['id']}", headers=manager_headers).status_code == 204
    assert client.get(f"/manager/orders/{created['id']}", headers=manager_headers).status_code == 404
    assert client.delete(f"/manager/orders/{created['id']}", headers=manager_headers).status_code == 404


def test_statistics_default_to_zero(client: TestClient, manager_headers):
    response = client.get("/manager/statistics", headers=manager_headers)
    assert response.status_code == 200
    assert response.json() == {
        "total_orders": 0,
        "total_revenue": 0,
        "total_workers": 0,
        "total_clients": 0,
        "average_order_value": 0,
    }


def test_statistics(client: TestClient, sample_client, sample_service, sample_worker, manager_headers):
    for price in (100, 300):
        client.post("/manager/orders", json=order_payload(
            sample_client.id, [line(sample_service.id, price)], worker_id=sample_worker.id), headers=manager_headers)
    data = client.get("/manager/statistics", headers=manager_headers).json()
    assert data["total_orders"] == 2
    assert data["total_revenue"] == 400
    assert data["total_workers"] == 1
    assert data["total_clients"] == 1
    assert data["average_order_value"] == 200


def test_worker_cannot_use_manager_routes(client: TestClient, worker_headers):
    assert client.get("/manager/orders", headers=worker_headers).status_code == 403


@pytest.mark.parametrize("position,expected", [
    ("spare", True),
    ("left_1", True),
    ("right_4", True),
    ("right_3_outer", True),
    ("left_1_inner", False),
    ("left_5", False),
    ("", False),
])
def test_wheel_positions(position, expected):
    assert is_valid_wheel_position(position) is expected


def test_calculate_earnings():
    assert calculate_earnings("percentage", 10, 5000) == 500
    assert calculate_earnings("fixed", 1500, 5000) == 1500
    assert calculate_earnings(None, 10, 5000) == 5000


def test_orders_by_worker_and_period(client: TestClient, sample_client, sample_service, sample_worker, manager_headers):
    client.post("/manager/orders", json=order_payload(
        sample_client.id, [line(sample_service.id, 100)], worker_id=sample_worker.id), headers=manager_headers)
    today = datetime.utcnow().date()
    params = {"worker_id": sample_worker.id, "start": today.isoformat(), "end": today.isoformat()}
    assert len(client.get("/manager/orders", params=params, headers=manager_headers).json()) == 1

    params["start"] = params["end"] = (today - timedelta(days=10)).isoformat()
    assert client.get("/manager/orders", params=params, headers=manager_headers).json() == []
