import json
from datetime import date, timedelta

CSV = (
    "Payment Date,Activation Date,IMEI,Amount,Payment Description,Business Name\n"
    "01/09/2025,01/01/2025,356000000000001,45,Month 1,Main St\n"
    "01/20/2025,01/01/2025,356000000000001,-45,Clawback,Main St\n"
    "01/20/2025,01/01/2025,356000000000003,0,Zero,Main St\n"
)


def _upload(client, content=CSV, name="january.csv"):
    return client.post("/commissions/upload", files={"file": (name, content.encode("utf-8"), "text/csv")})


def test_upload_creates_batch_and_reports_counts(client):
    response = _upload(client)

    assert response.status_code == 200
    body = response.json()
    assert body["inserted"] == 2
    assert body["skipped"] == 1
    assert body["batch_id"]

    again = _upload(client).json()
    assert again["inserted"] == 0
    assert again["duplicates"] == 2

    files = client.get("/files").json()["items"]
    assert len(files) == 1
    assert files[0]["filename"] == "january.csv"
    assert files[0]["record_count"] == 2


def test_upload_rejects_empty_and_unknown_files(client):
    assert _upload(client, content="").status_code == 400
    assert _upload(client, name="notes.txt").status_code == 400


def test_file_download_and_delete(client):
    batch_id = _upload(client).json()["batch_id"]

    csv_download = client.get(f"/files/{batch_id}/download")
    assert csv_download.status_code == 200
    assert "356000000000001" in csv_download.text
    assert 'filename="january.csv"' in csv_download.headers["content-disposition"]

    json_download = client.get(f"/files/{batch_id}/download", params={"format": "json"})
    assert len(json_download.json()) == 2

    assert client.delete(f"/files/{batch_id}").json()["deleted_rows"] == 2
    assert client.get("/commissions").json() == []
    assert client.delete(f"/files/{batch_id}").status_code == 404


def test_commission_crud(client, record):
    created = client.post("/commissions", json=record())
    assert created.status_code == 201
    record_id = created.json()["id"]

    assert client.get(f"/commissions/{record_id}").json()["amount"] == 45.0
    updated = client.put(f"/commissions/{record_id}", json={"amount": 60})
    assert updated.json()["amount"] == 60.0
    assert client.put(f"/commissions/{record_id}", json={"amount": 0}).status_code == 400

    assert client.delete(f"/commissions/{record_id}").json() == {"deleted": True, "id": record_id}
    assert client.get(f"/commissions/{record_id}").status_code == 404


def test_create_rejects_zero_amount(client, record):
    assert client.post("/commissions", json=record(amount=0)).status_code == 400


def test_bulk_ingest(client, record):
    payload = {"records": [record(), record(), record(amount=0)], "filename": "bulk.json"}

    body = client.post("/commissions/bulk", json=payload).json()

    assert body == {"inserted": 1, "duplicates": 1, "skipped": 1, "batch_id": body["batch_id"]}
    assert body["batch_id"]
    assert client.post("/commissions/bulk", json={"records": []}).status_code == 422


def test_device_endpoints(client, record):
    client.post("/commissions/bulk", json={"records": [record()]})
    imei = "356000000000001"

    assert len(client.get(f"/devices/{imei}/records").json()) == 1
    assert client.get("/devices/000/records").status_code == 404

    assert client.post(f"/devices/{imei}/toggle-active").json() == {"imei": imei, "is_active": False}
    assert client.post("/devices/000/toggle-active").status_code == 404

    manual = client.post(f"/devices/{imei}/manual-payment", json={"month": 2, "amount": 45}).json()
    assert manual["created"] is True
    assert manual["record"]["description"] == "Manual Entry - Month 2"
    assert client.post(f"/devices/{imei}/manual-payment", json={"month": 9, "amount": 45}).status_code == 422

    assert client.get(f"/devices/{imei}/notes").json()["notes"] == ""
    saved = client.put(f"/devices/{imei}/notes", json={"notes": "called", "suspended": True}).json()
    assert saved["suspended"] is True
    conflict = client.put(f"/devices/{imei}/notes", json={"suspended": True, "deactivated": True})
    assert conflict.status_code == 400


def test_annotation_list_export_import(client):
    client.put("/devices/111/notes", json={"blacklisted": True})

    assert [a["device_id"] for a in client.get("/devices/annotations", params={"flag": "blacklisted"}).json()] == ["111"]
    assert client.get("/devices/annotations", params={"flag": "bogus"}).status_code == 400

    exported = client.get("/devices/annotations/export").json()
    assert exported["count"] == 1

    imported = client.post("/devices/annotations/import", json={"entries": [{"device_id": "222", "byod_swap": True}]})
    assert imported.json() == {"imported": 1}
    assert client.get("/devices/222/notes").json()["byod_swap"] is True


def _recent_device(record, device_id, days_ago, store_name):
    activated = date.today() - timedelta(days=days_ago)
    return record(
        device_id=device_id,
        activation_date=activated.isoformat(),
        payment_date=(activated + timedelta(days=8)).isoformat(),
        store=store_name,
    )


def test_dashboard_endpoints(client, record):
    rows = [
        _recent_device(record, "111", 60, "North"),
        _recent_device(record, "222", 20, "South"),
        record(device_id="222", amount=-10, payment_date=date.today().isoformat(), store="South",
               activation_date=(date.today() - timedelta(days=20)).isoformat()),
    ]
    client.post("/commissions/bulk", json={"records": rows})

    summaries = client.get("/dashboard/summaries", params={"page_size": 1}).json()
    assert summaries["total"] == 2
    assert summaries["pages"] == 2
    assert summaries["items"][0]["imei"] == "222"
    assert len(summaries["items"][0]["months_status"]) == 6

    north = client.get("/dashboard/summaries", params={"store": "North"}).json()
    assert [s["imei"] for s in north["items"]] == ["111"]
    assert client.get("/dashboard/summaries", params={"category": "bogus"}).status_code == 400

    alerts = client.get("/dashboard/alerts").json()
    assert {a["type"] for a in alerts["items"]} == {"overdue", "negative"}
    south_alerts = client.get("/dashboard/alerts", params={"store": "South"}).json()
    assert {a["imei"] for a in south_alerts["items"]} == {"222"}

    metrics = client.get("/dashboard/metrics").json()
    assert metrics["total_earned"] == 90
    assert metrics["total_withheld"] == 10
    assert metrics["unique_imeis"] == 2
    assert metrics["overdue_payments"] == 1
    assert metrics["annotations"]["notes"] == 0

    assert client.get("/dashboard/stores").json() == {"stores": ["North", "South"]}


def test_posting_same_commission_twice_conflicts(client, record):
    assert client.post("/commissions", json=record()).status_code == 201

    duplicate = client.post("/commissions", json=record())

    assert duplicate.status_code == 409
    assert len(client.get("/commissions").json()) == 1


def test_bulk_with_non_finite_amount_skips_that_row(client, record):
    body = json.dumps({"records": [record(), record(device_id="9", amount=float("nan"))]})

    response = client.post("/commissions/bulk", content=body, headers={"Content-Type": "application/json"})

    assert response.status_code == 200
    assert response.json()["inserted"] == 1
    assert response.json()["skipped"] == 1


def test_bulk_rejects_reused_batch_id(client, record):
    first = client.post("/commissions/bulk", json={"records": [record()], "batch_id": "B", "filename": "a.json"})
    assert first.json()["batch_id"] == "B"

    second = client.post(
        "/commissions/bulk",
        json={"records": [record(payment_date="2025-02-10")], "batch_id": "B", "filename": "b.json"},
    )

    assert second.status_code == 400
    assert len(client.get("/commissions").json()) == 1


def test_failed_annotation_import_saves_nothing(client):
    response = client.post(
        "/devices/annotations/import",
        json={"entries": [{"device_id": "a", "notes": "first"}, {"notes": "no id"}]},
    )

    assert response.status_code == 400
    assert client.get("/devices/annotations").json() == []
