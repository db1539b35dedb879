def _setup(client):
    c = client.post("/v1/clients", json={"name": "Épicerie"}).json()
    savon = client.post("/v1/products", json={"name": "Savon", "price": "10.00"}).json()
    bougie = client.post("/v1/products", json={"name": "Bougie", "price": "5.00"}).json()
    sub_a = client.post(f"/v1/products/{bougie['id']}/sub-products", json={"name": "A"}).json()
    sub_b = client.post(f"/v1/products/{bougie['id']}/sub-products", json={"name": "B"}).json()

    r = client.post(f"/v1/clients/{c['id']}/products", json={"product_id": savon["id"], "initial_stock": 10})
    assert r.status_code == 200, r.text
    r = client.post(
        f"/v1/clients/{c['id']}/products",
        json={"product_id": bougie["id"], "sub_product_stocks": {str(sub_a["id"]): 4, str(sub_b["id"]): 6}},
    )
    assert r.status_code == 200, r.text
    return c, savon, bougie, sub_a, sub_b


def test_health(client):
    assert client.get("/v1/health").json() == {"status": "ok"}


def test_stock_position(client):
    c, savon, bougie, sub_a, _ = _setup(client)

    body = client.get(f"/v1/clients/{c['id']}/stock").json()
    assert [line["product_name"] for line in body["lines"]] == ["Savon", "Bougie"]
    assert body["lines"][1]["current_stock"] == 10
    assert [s["current_stock"] for s in body["lines"][1]["sub_products"]] == [4, 6]
    assert "perProductForm" in body["default_form"]


def test_duplicate_association_is_conflict(client):
    c, savon, *_ = _setup(client)
    r = client.post(f"/v1/clients/{c['id']}/products", json={"product_id": savon["id"], "initial_stock": 1})
    assert r.status_code == 409


def test_preview_then_commit(client):
    """
    GIVEN Savon 10 -> compté 7 / dépôt 12, A 4 -> compté 2 / dépôt 5
    THEN aperçu 3 + 2 vendus = 40.00 ; la soumission crée la facture
    """
    c, savon, bougie, sub_a, _ = _setup(client)
    payload = {
        "form": {
            "perProductForm": {str(savon["id"]): {"counted_stock": "7", "stock_added": "12"}},
            "perSubProductForm": {str(sub_a["id"]): {"counted_stock": "2", "stock_added": "5"}},
            "pendingAdjustments": [],
        }
    }

    preview = client.post(f"/v1/clients/{c['id']}/reconciliation/preview", json=payload)
    assert preview.status_code == 200, preview.text
    body = preview.json()
    assert body["total_stock_sold"] == 5
    assert body["final_total"] == "40.00"

    commit = client.post(f"/v1/clients/{c['id']}/reconciliation/commit", json=payload)
    assert commit.status_code == 200, commit.text
    result = commit.json()
    assert result["invoice_number"].startswith("F-")
    assert result["warnings"] == []

    detail = client.get(f"/v1/invoices/{result['invoice_id']}").json()
    assert detail["total_amount"] == "40.00"
    assert len(detail["stock_updates"]) == 3
    assert detail["invoice_pdf_path"] is not None

    stock = client.get(f"/v1/clients/{c['id']}/stock").json()
    assert [line["current_stock"] for line in stock["lines"]] == [12, 11]


def test_half_filled_line_is_unprocessable(client):
    c, savon, *_ = _setup(client)
    payload = {"form": {"perProductForm": {str(savon["id"]): {"counted_stock": "7", "stock_added": ""}}}}

    r = client.post(f"/v1/clients/{c['id']}/reconciliation/commit", json=payload)
    assert r.status_code == 422
    assert "Savon" in r.json()["detail"]


def test_negative_total_is_conflict(client):
    c, *_ = _setup(client)
    r = client.post(f"/v1/clients/{c['id']}/draft/adjustments", json={
        "operation_name": "Reprise", "unit_price": "15", "quantity": "1",
    })
    assert r.status_code == 200, r.text
    form = r.json()["data"]

    r = client.post(f"/v1/clients/{c['id']}/reconciliation/commit", json={"form": form})
    assert r.status_code == 409
    assert "avoir" in r.json()["detail"]
    assert client.get(f"/v1/clients/{c['id']}/invoices").json() == []


def test_draft_flow(client):
    c, savon, *_ = _setup(client)
    snapshot = {
        "perProductForm": {str(savon["id"]): {"counted_stock": "7", "stock_added": "", "product_info": ""}},
        "perSubProductForm": {},
        "pendingAdjustments": [],
    }

    r = client.put(f"/v1/clients/{c['id']}/draft", json=snapshot)
    assert r.status_code == 200, r.text
    assert r.json()["state"] == "DIRTY"

    # nouvelle ouverture du formulaire : décision attendue
    opened = client.get(f"/v1/clients/{c['id']}/draft").json()
    assert opened["state"] == "PENDING_DECISION"
    assert opened["data"]["perProductForm"][str(savon["id"])]["counted_stock"] == "7"

    resumed = client.post(f"/v1/clients/{c['id']}/draft/resume").json()
    assert resumed["state"] == "DIRTY"

    discarded = client.post(f"/v1/clients/{c['id']}/draft/discard").json()
    assert discarded["state"] == "CLEAN"
    assert discarded["data"]["perProductForm"][str(savon["id"])]["counted_stock"] == ""
    assert client.get(f"/v1/clients/{c['id']}/draft").json()["state"] == "CLEAN"


def test_manual_adjustment_endpoint(client):
    c, savon, *_ = _setup(client)
    r = client.post(f"/v1/clients/{c['id']}/stock-adjustments", json={"product_id": savon["id"], "new_stock": 4})
    assert r.status_code == 200, r.text
    assert r.json()["stock_updates"][0]["stock_added"] == -6

    same = client.post(f"/v1/clients/{c['id']}/stock-adjustments", json={"product_id": savon["id"], "new_stock": 4})
    assert same.status_code == 422


def test_credit_note_endpoint(client):
    c, savon, *_ = _setup(client)
    payload = {"form": {"perProductForm": {str(savon["id"]): {"counted_stock": "7", "stock_added": "7"}}}}
    invoice_id = client.post(f"/v1/clients/{c['id']}/reconciliation/commit", json=payload).json()["invoice_id"]

    r = client.post(f"/v1/invoices/{invoice_id}/credit-notes", json={
        "operation_name": "Retour", "quantity": 1, "unit_price": "10",
    })
    assert r.status_code == 200, r.text
    assert r.json()["credit_note"]["total_amount"] == "10.00"

    missing = client.post("/v1/invoices/999999/credit-notes", json={
        "operation_name": "Retour", "quantity": 1, "unit_price": "10",
    })
    assert missing.status_code == 404
