"""Mini-README: API tests for resource types, factors, shirt sizes and lookup tables."""

from __future__ import annotations


def _resource_type(client, name: str = "Developer", cost: float | None = 100) -> dict:
    response = client.post("/api/resource-types", json={"name": name, "resource_cost": cost})
    assert response.status_code == 201
    return response.json()


def test_resource_type_update_audits_only_real_changes(client) -> None:
    dev = _resource_type(client)
    assert [entry["action"] for entry in dev["journal_entries"]] == ["created"]

    same = client.put(f"/api/resource-types/{dev['id']}", json={"name": "Developer", "resource_cost": 100})
    assert len(same.json()["journal_entries"]) == 1

    client.put(f"/api/resource-types/{dev['id']}", json={"name": "Developer", "resource_cost": 120})
    audit = client.get(f"/api/resource-types/{dev['id']}/audit").json()
    assert audit[-1]["changes"] == ["Changed resource_cost from 100 to 120"]


def test_resource_type_names_are_unique(client) -> None:
    _resource_type(client)
    response = client.post("/api/resource-types", json={"name": "developer"})
    assert response.status_code == 409


def test_resource_type_rejects_negative_cost_and_unknown_category(client) -> None:
    assert client.post("/api/resource-types", json={"name": "QA", "resource_cost": -5}).status_code == 400
    assert client.post("/api/resource-types", json={"name": "QA", "resource_category": "Other"}).status_code == 400
    licence = client.post("/api/resource-types", json={"name": "Licence", "resource_category": "Non-Labour"})
    assert licence.json()["resource_category"] == "Non-Labour"


def test_factor_update_audit_uses_resource_names(client) -> None:
    dev = _resource_type(client)
    factor = client.post(
        "/api/estimation-factors",
        json={"name": "Report", "hoursPerResourceType": {dev["id"]: 8}},
    ).json()

    client.put(
        f"/api/estimation-factors/{factor['id']}",
        json={"name": "Report", "hoursPerResourceType": {dev["id"]: 16}},
    )

    audit = client.get(f"/api/estimation-factors/{factor['id']}/audit").json()
    assert audit[-1]["changes"] == ["Changed hours for Developer from 8h to 16h"]


def test_duplicate_factor_copies_rates_and_records_origin(client) -> None:
    dev = _resource_type(client)
    factor = client.post(
        "/api/estimation-factors",
        json={"name": "Report", "hoursPerResourceType": {dev["id"]: 8}, "valuePerResourceType": {dev["id"]: 0}},
    ).json()
    assert factor["valuePerResourceType"] == {}

    copy = client.post(f"/api/estimation-factors/{factor['id']}/duplicate")
    assert copy.status_code == 201
    body = copy.json()
    assert body["name"] == "Report Copy"
    assert body["hoursPerResourceType"] == {dev["id"]: 8}
    assert [entry["action"] for entry in body["journal_entries"]] == ["duplicated_from", "created"]

    named = client.post(f"/api/estimation-factors/{factor['id']}/duplicate", json={"name": "Dashboard"})
    assert named.json()["name"] == "Dashboard"
    assert client.post(f"/api/estimation-factors/{factor['id']}/duplicate").status_code == 409


def test_shirt_sizes_bulk_update_is_audited(client) -> None:
    sizes = client.get("/api/shirt-sizes").json()
    assert [row["size"] for row in sizes] == ["XS", "S", "M", "L", "XL", "XXL"]

    response = client.put("/api/shirt-sizes", json=[{"size": "S", "threshold_hours": 50}])
    assert response.status_code == 200
    assert {row["size"]: row["threshold_hours"] for row in response.json()}["S"] == 50

    audit = client.get("/api/shirt-sizes/audit").json()
    assert len(audit) == 1
    assert audit[0]["changes"] == ["Changed threshold for size S from 40 to 50"]


def test_shirt_size_update_rejects_unknown_or_repeated_labels(client) -> None:
    assert client.put("/api/shirt-sizes", json=[{"size": "XXXL", "threshold_hours": 2000}]).status_code == 400
    repeated = [{"size": "S", "threshold_hours": 40}, {"size": "S", "threshold_hours": 41}]
    assert client.put("/api/shirt-sizes", json=repeated).status_code == 400
    assert client.get("/api/shirt-sizes/audit").json() == []


def test_new_thresholds_apply_to_later_saves(client) -> None:
    dev = _resource_type(client)
    client.put("/api/shirt-sizes", json=[{"size": "S", "threshold_hours": 50}])

    body = client.post(
        "/api/initiatives",
        json={"name": "Portal", "manual_resources": {"manualHours": {dev["id"]: 40}}},
    ).json()

    assert body["computed_hours"] == 40
    assert body["shirt_size"] == "XS"


def test_category_lifecycle(client) -> None:
    created = client.post("/api/categories", json={"name": "Data"})
    assert created.status_code == 201
    category_id = created.json()["id"]
    assert client.post("/api/categories", json={"name": "Data"}).status_code == 409

    client.post("/api/categories", json={"name": "Platform"})
    client.post(f"/api/categories/{category_id}/increment")
    names = [item["name"] for item in client.get("/api/categories").json()]
    assert names == ["Data", "Platform"]
    assert [item["name"] for item in client.get("/api/categories", params={"query": "plat"}).json()] == ["Platform"]

    renamed = client.put(f"/api/categories/{category_id}", json={"name": "Analytics"})
    assert renamed.json()["name"] == "Analytics"

    recalculated = client.post("/api/categories/recalculate").json()
    assert all(item["usage_count"] == 0 for item in recalculated)

    assert client.delete(f"/api/categories/{category_id}").status_code == 200
    assert client.delete(f"/api/categories/{category_id}").status_code == 404


def test_dropdown_options_crud(client) -> None:
    grouped = client.get("/api/dropdown-options").json()
    assert "Draft" in grouped["status"]
    assert grouped["priority"] == ["High", "Low", "Medium"]

    added = client.post("/api/dropdown-options", json={"category": "status", "value": "Blocked"})
    assert added.status_code == 201
    assert client.post("/api/dropdown-options", json={"category": "status", "value": "Blocked"}).status_code == 409

    renamed = client.put(
        "/api/dropdown-options",
        json={"category": "status", "oldValue": "Blocked", "newValue": "On Ice"},
    )
    assert renamed.json()["value"] == "On Ice"

    assert client.delete("/api/dropdown-options/status/On Ice").status_code == 200
    assert "On Ice" not in [row["value"] for row in client.get("/api/dropdown-options/status").json()]
    assert client.delete("/api/dropdown-options/status/On Ice").status_code == 404


def test_deleting_option_from_unknown_category_returns_404(client) -> None:
    response = client.delete("/api/dropdown-options/" + "x" * 40 + "/Blocked")
    assert response.status_code == 404
    assert "not found" in response.json()["message"]
    assert client.delete("/api/dropdown-options/status/%20").status_code == 404


def test_backup_frequency_setting_is_validated(client) -> None:
    assert client.get("/api/backup/frequency").json() == {"frequency": 30}
    assert client.put("/api/backup/frequency", json={"frequency": 60}).status_code == 200
    assert client.get("/api/backup/frequency").json() == {"frequency": 60}
    assert client.put("/api/backup/frequency", json={"frequency": 2}).status_code == 400


def test_health_and_system_info(client) -> None:
    assert client.get("/health").json()["status"] == "ok"
    info = client.get("/api/system/info").json()
    assert info["systemSettings"]["backup_frequency_minutes"] == "30"

    build = client.get("/api/system/build-info").json()
    assert set(build["buildInfo"]) == {"build_number", "created_at"}
    assert build["serverInfo"]["uptime"] >= 0
    assert build["systemSettings"] == info["systemSettings"]
