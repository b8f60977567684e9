# tests/test_catalog.py
from fastapi.testclient import TestClient


def create_contract(client, headers, number, client_type="Наличка"):
    return client.post("/manager/contracts", json={"number": number, "client_type": client_type}, headers=headers)


def test_create_contract(client: TestClient, manager_headers):
    response = create_contract(client, manager_headers, "Д-100", "Контрагент")
    assert response.status_code == 200
    assert response.json()["client_type"] == "Контрагент"


def test_duplicate_contract_number(client: TestClient, sample_contract, manager_headers):
    response = create_contract(client, manager_headers, sample_contract.number)
    assert response.status_code == 409


def test_contract_unknown_client_type(client: TestClient, manager_headers):
    response = create_contract(client, manager_headers, "Д-101", "VIP")
    assert response.status_code == 400


def test_contract_number_required(client: TestClient, manager_headers):
    response = client.post("/manager/contracts", json={"client_type": "Наличка"}, headers=manager_headers)
    assert response.status_code == 400


def test_contract_is_immutable(client: TestClient, sample_contract, manager_headers):
    url = f"/manager/contracts/{sample_contract.id}"
    assert client.put(url, json={"number": "X"}, headers=manager_headers).status_code == 405
    assert client.delete(url, headers=manager_headers).status_code == 405
    assert client.get(url, headers=manager_headers).json()["number"] == sample_contract.number


def test_add_services_to_contract(client: TestClient, sample_contract, manager_headers):
    response = client.post(f"/manager/contracts/{sample_contract.id}/services", json={"services": [
        {"name": "Снятие колеса", "price": 150},
        {"name": "Установка колеса", "price": 150},
    ]}, headers=manager_headers)
    assert response.status_code == 200
    assert len(response.json()) == 2

    prices = client.get("/manager/services", headers=manager_headers).json()
    assert {s["name"] for s in prices} == {"Снятие колеса", "Установка колеса"}


def test_add_services_to_missing_contract(client: TestClient, manager_headers):
    response = client.post("/manager/contracts/99/services", json={"services": [{"name": "Мойка", "price": 10}]},
                           headers=manager_headers)
    assert response.status_code == 404


def test_grouped_prices_by_contract(client: TestClient, manager_headers):
    cash = create_contract(client, manager_headers, "A-1", "Наличка").json()
    partner = create_contract(client, manager_headers, "B-1", "Контрагент").json()
    for contract, price in ((cash, 700), (partner, 595)):
        client.post("/manager/services", json={"name": "Balancing", "price": price, "contract_id": contract["id"]},
                    headers=manager_headers)
    # другое написание остается отдельной услугой
    client.post("/manager/services", json={"name": "balancing", "price": 650, "contract_id": cash["id"]},
                headers=manager_headers)

    response = client.get("/manager/services/with-prices", headers=manager_headers)
    assert response.status_code == 200
    families = {f["name"]: f["prices"] for f in response.json()}
    assert len(families) == 2
    assert families["Balancing"] == [
        {"contract_id": cash["id"], "contract_name": "A-1", "price": 700},
        {"contract_id": partner["id"], "contract_name": "B-1", "price": 595},
    ]
    assert families["balancing"][0]["price"] == 650


def test_service_requires_existing_contract(client: TestClient, manager_headers):
    response = client.post("/manager/services", json={"name": "Мойка", "price": 100, "contract_id": 42},
                           headers=manager_headers)
    assert response.status_code == 404


def test_service_price_not_negative(client: TestClient, sample_contract, manager_headers):
    response = client.post("/manager/services", json={"name": "Мойка", "price": -1, "contract_id": sample_contract.id},
                           headers=manager_headers)
    assert response.status_code == 400


def test_delete_service(client: TestClient, sample_service, manager_headers):
    url = f"/manager/services/{sample_service.id}"
    assert client.delete(url, headers=manager_headers).status_code == 204
    assert client.get(url, headers=manager_headers).status_code == 404
    assert client.delete(url, headers=manager_headers).status_code == 404


def test_update_missing_service(client: TestClient, sample_contract, manager_headers):
    response = client.put("/manager/services/500", json={"name": "Мойка", "price": 1, "contract_id": sample_contract.id},
                          headers=manager_headers)
    assert response.status_code == 404


def test_contract_prices_for_any_role(client: TestClient, sample_service, sample_contract, worker_headers):
    response = client.get(f"/services/{sample_contract.id}/prices", headers=worker_headers)
    assert response.status_code == 200
    assert [s["name"] for s in response.json()] == [sample_service.name]


def test_requires_token(client: TestClient):
    assert client.get("/services").status_code == 401
