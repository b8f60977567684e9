# tests/test_inventory.py
import pytest
from fastapi.testclient import TestClient


@pytest.fixture
def material(client: TestClient, manager_headers):
    response = client.post("/manager/materials", json={"name": "Грузик 10г", "type_ds": 1, "storage": 10},
                           headers=manager_headers)
    assert response.status_code == 200
    return response.json()


def test_duplicate_material(client: TestClient, material, manager_headers):
    response = client.post("/manager/materials", json={"name": "Грузик 10г", "type_ds": 1}, headers=manager_headers)
    assert response.status_code == 409

    response = client.post("/manager/materials", json={"name": "Грузик 10г", "type_ds": 2}, headers=manager_headers)
    assert response.status_code == 200


def test_find_material_by_name_and_type(client: TestClient, material, manager_headers):
    response = client.get("/manager/materials", params={"name": "Грузик 10г", "type_ds": 1}, headers=manager_headers)
    assert response.status_code == 200
    assert response.json()[0]["id"] == material["id"]

    response = client.get("/manager/materials", params={"name": "Грузик 10г", "type_ds": 5}, headers=manager_headers)
    assert response.status_code == 404


def test_add_and_subtract_quantity(client: TestClient, material, manager_headers):
    url = f"/manager/materials/{material['id']}"
    response = client.post(f"{url}/add", json={"quantity": 5}, headers=manager_headers)
    assert response.status_code == 200
    assert response.json()["storage"] == 15

    response = client.post(f"{url}/subtract", json={"quantity": 15}, headers=manager_headers)
    assert response.status_code == 200
    assert response.json()["storage"] == 0


def test_subtract_more_than_in_stock(client: TestClient, material, manager_headers):
    url = f"/manager/materials/{material['id']}"
    response = client.post(f"{url}/subtract", json={"quantity": 11}, headers=manager_headers)
    assert response.status_code == 400
    assert client.get(url, headers=manager_headers).json()["storage"] == 10


def test_quantity_must_be_positive(client: TestClient, material, manager_headers):
    response = client.post(f"/manager/materials/{material['id']}/add", json={"quantity": -3}, headers=manager_headers)
    assert response.status_code == 400


def test_quantity_for_missing_material(client: TestClient, manager_headers):
    response = client.post("/manager/materials/404/subtract", json={"quantity": 1}, headers=manager_headers)
    assert response.status_code == 404


def test_update_and_delete_material(client: TestClient, material, manager_headers):
    url = f"/manager/materials/{material['id']}"
    response = client.patch(url, json={"name": "Грузик 15г"}, headers=manager_headers)
    assert response.status_code == 200
    assert response.json()["name"] == "Грузик 15г"
    assert client.delete(url, headers=manager_headers).status_code == 204
    assert client.get(url, headers=manager_headers).status_code == 404


def test_storage_starts_empty(client: TestClient, manager_headers):
    response = client.get("/manager/storage", headers=manager_headers)
    assert response.status_code == 200
    assert response.json()["rs25"] == 0
    assert response.json()["foot15"] == 0


def test_spell_material_insufficient_keeps_storage(client: TestClient, manager_headers):
    client.post("/manager/storage/delivery", json={"rs25": 5, "r19": 20}, headers=manager_headers)
    card = client.post("/manager/material-cards", json={"rs25": 10, "r19": 1}, headers=manager_headers).json()

    response = client.post(f"/manager/storage/spell/{card['id']}", headers=manager_headers)
    assert response.status_code == 400

    storage = client.get("/manager/storage", headers=manager_headers).json()
    assert storage["rs25"] == 5
    assert storage["r19"] == 20


def test_spell_material(client: TestClient, manager_headers):
    client.post("/manager/storage/delivery", json={"rs25": 12, "foot9": 3}, headers=manager_headers)
    card = client.post("/manager/material-cards", json={"rs25": 10, "foot9": 3}, headers=manager_headers).json()

    response = client.post(f"/manager/storage/spell/{card['id']}", headers=manager_headers)
    assert response.status_code == 200
    assert response.json()["rs25"] == 2
    assert response.json()["foot9"] == 0

    # второй раз уже не хватает
    assert client.post(f"/manager/storage/spell/{card['id']}", headers=manager_headers).status_code == 400


def test_delivery_rejects_negative_and_unknown(client: TestClient, manager_headers):
    assert client.post("/manager/storage/delivery", json={"rs25": -1}, headers=manager_headers).status_code == 400
    assert client.post("/manager/storage/delivery", json={"r99": 1}, headers=manager_headers).status_code == 400


def test_spell_missing_card(client: TestClient, manager_headers):
    assert client.post("/manager/storage/spell/12345", headers=manager_headers).status_code == 404


def test_material_card_crud(client: TestClient, manager_headers):
    card = client.post("/manager/material-cards", json={"r13": 2}, headers=manager_headers).json()
    url = f"/manager/material-cards/{card['id']}"
    response = client.patch(url, json={"r13": 4}, headers=manager_headers)
    assert response.json()["r13"] == 4
    assert client.patch(url, json={"r13": -4}, headers=manager_headers).status_code == 400
    assert len(client.get("/manager/material-cards", headers=manager_headers).json()) == 1
    assert client.delete(url, headers=manager_headers).status_code == 204
    assert client.get(url, headers=manager_headers).status_code == 404
