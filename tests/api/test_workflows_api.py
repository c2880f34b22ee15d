# tests/api/test_workflows_api.py
"""
Contrato HTTP: rutas bajo /api/v1, stub Bearer mock-<user_id> y el sobre de
error {"error": {"code", "message", "details"}}.
"""

from conftest import BOB, CAROL, OWNER, auth, nodes

API = "/api/v1"


def _create(client, name="Pipeline A", user=OWNER, **fields):
    r = client.post(f"{API}/workflows", json={"name": name, **fields}, headers=auth(user))
    assert r.status_code == 201, r.text
    return r.json()["id"]


def test_healthz(client):
    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


def test_request_id_header(client):
    r = client.get("/healthz")
    assert r.headers["X-Request-Id"].startswith("req_")
    r = client.get("/healthz", headers={"X-Request-Id": "abc"})
    assert r.headers["X-Request-Id"] == "abc"


def test_missing_or_bad_token_is_401(client):
    r = client.get(f"{API}/workflows")
    assert r.status_code == 401
    assert r.json()["error"]["code"] == "UNAUTHORIZED"

    r = client.get(f"{API}/workflows", headers={"Authorization": "Bearer real-token"})
    assert r.status_code == 401


def test_create_and_get(client, auth_headers):
    wid = _create(client, nodes=nodes("n1"), tags=["etl"])
    r = client.get(f"{API}/workflows/{wid}", headers=auth_headers)
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["id"] == wid
    assert body["status"] == "draft"
    assert body["version"] == 1
    assert body["owner_name"] == "Alice Doe"
    assert body["nodes"][0]["id"] == "n1"
    assert body["tags"] == ["etl"]


def test_get_by_stranger_is_404_envelope(client):
    wid = _create(client)
    r = client.get(f"{API}/workflows/{wid}", headers=auth(BOB))
    assert r.status_code == 404
    error = r.json()["error"]
    assert error["code"] == "NOT_FOUND"
    assert error["message"]
    assert error["details"] == []


def test_duplicate_name_is_409(client, auth_headers):
    _create(client)
    r = client.post(f"{API}/workflows", json={"name": "Pipeline A"}, headers=auth_headers)
    assert r.status_code == 409
    assert r.json()["error"]["code"] == "DUPLICATE_NAME"


def test_invalid_body_is_422_with_details(client, auth_headers):
    r = client.post(f"{API}/workflows", json={"name": "", "bogus": 1}, headers=auth_headers)
    assert r.status_code == 422
    error = r.json()["error"]
    assert error["code"] == "VALIDATION_ERROR"
    paths = {d["path"] for d in error["details"]}
    assert {"name", "bogus"} <= paths


def test_update_and_permissions(client, auth_headers):
    wid = _create(client)
    r = client.patch(f"{API}/workflows/{wid}", json={"description": "new"}, headers=auth_headers)
    assert r.status_code == 200
    assert r.json() == {"count": 1}

    client.post(f"{API}/workflows/{wid}/grants", json={"user_id": BOB, "permission": "view"}, headers=auth_headers)
    r = client.patch(f"{API}/workflows/{wid}", json={"description": "by bob"}, headers=auth(BOB))
    assert r.status_code == 403
    assert r.json()["error"]["code"] == "NOT_AUTHORIZED"


def test_list_and_search(client, auth_headers):
    for name in ("alpha", "beta", "gamma"):
        _create(client, name=name)

    r = client.get(f"{API}/workflows", params={"limit": 2, "sort_by": "name", "descending": False}, headers=auth_headers)
    assert r.status_code == 200
    body = r.json()
    assert [w["name"] for w in body["items"]] == ["alpha", "beta"]
    assert body["total"] == 3 and body["pages"] == 2

    r = client.get(f"{API}/workflows/search", params={"q": "AMM"}, headers=auth_headers)
    assert [w["name"] for w in r.json()["items"]] == ["gamma"]

    r = client.get(f"{API}/workflows", params={"sort_by": "owner_id"}, headers=auth_headers)
    assert r.status_code == 422


def test_stats(client, auth_headers):
    wid = _create(client, nodes=nodes("n1"))
    _create(client, name="other")
    client.post(f"{API}/workflows/{wid}/deploy", headers=auth_headers)

    r = client.get(f"{API}/workflows/stats", headers=auth_headers)
    assert r.json() == {"total": 2, "draft": 1, "active": 1, "paused": 0, "archived": 0}


def test_delete(client, auth_headers):
    wid = _create(client)
    assert client.delete(f"{API}/workflows/{wid}", headers=auth(BOB)).status_code == 404
    r = client.delete(f"{API}/workflows/{wid}", headers=auth_headers)
    assert r.status_code == 200 and r.json() == {"count": 1}
    assert client.get(f"{API}/workflows/{wid}", headers=auth_headers).status_code == 404


def test_duplicate_and_templates(client, auth_headers):
    wid = _create(client, nodes=nodes("n1"))

    r = client.post(f"{API}/workflows/{wid}/duplicate", headers=auth_headers)
    assert r.status_code == 201
    copy = client.get(f"{API}/workflows/{r.json()['id']}", headers=auth_headers).json()
    assert copy["name"] == "Pipeline A (Copy)"

    r = client.post(f"{API}/workflows/{wid}/template", headers=auth_headers)
    assert r.status_code == 201
    tid = r.json()["id"]

    templates = client.get(f"{API}/workflows/templates", headers=auth_headers).json()
    assert [t["id"] for t in templates] == [tid]

    r = client.post(f"{API}/workflows/templates/{tid}/instantiate", json={"name": "From tpl"}, headers=auth_headers)
    assert r.status_code == 201
    made = client.get(f"{API}/workflows/{r.json()['id']}", headers=auth_headers).json()
    assert made["name"] == "From tpl"
    assert made["template_id"] == tid


def test_lifecycle_endpoints(client, auth_headers):
    wid = _create(client)
    r = client.post(f"{API}/workflows/{wid}/deploy", headers=auth_headers)
    assert r.status_code == 422
    assert r.json()["error"]["code"] == "INVALID_WORKFLOW"

    client.patch(f"{API}/workflows/{wid}", json={"nodes": nodes("n1", "n2")}, headers=auth_headers)
    assert client.post(f"{API}/workflows/{wid}/deploy", headers=auth_headers).status_code == 200

    statuses = client.get(f"{API}/workflows/{wid}/node-status", headers=auth_headers).json()
    assert [(s["node_id"], s["status"]) for s in statuses] == [("n1", "idle"), ("n2", "idle")]

    assert client.post(f"{API}/workflows/{wid}/pause", headers=auth_headers).status_code == 200
    assert client.get(f"{API}/workflows/{wid}", headers=auth_headers).json()["status"] == "paused"

    r = client.put(f"{API}/workflows/{wid}/status", json={"status": "archived"}, headers=auth_headers)
    assert r.status_code == 200
    r = client.put(f"{API}/workflows/{wid}/status", json={"status": "published"}, headers=auth_headers)
    assert r.status_code == 422

    assert client.post(f"{API}/workflows/{wid}/archive", headers=auth(BOB)).status_code == 404


def test_logs_and_test_run(client, auth_headers):
    wid = _create(client, nodes=nodes("n1"))
    r = client.post(f"{API}/workflows/{wid}/test", json={"sample": True}, headers=auth_headers)
    assert r.status_code == 200, r.text
    result = r.json()
    assert result["success"] is True
    assert result["nodes"] == [{"node_id": "n1", "status": "success", "output": {"dry_run": True}}]

    r = client.get(
        f"{API}/workflows/{wid}/logs", params={"execution_id": result["execution_id"]}, headers=auth_headers
    )
    assert [e["message"] for e in r.json()] == ["Test execution completed", "Test execution started"]

    r = client.get(f"{API}/workflows/{wid}/logs", params={"limit": 1}, headers=auth_headers)
    assert len(r.json()) == 1


def test_versions_flow(client, auth_headers):
    wid = _create(client, nodes=nodes("n1"))
    r = client.post(f"{API}/workflows/{wid}/versions", json={"name": "v1"}, headers=auth_headers)
    assert r.status_code == 201
    v1 = r.json()["id"]

    client.patch(f"{API}/workflows/{wid}", json={"nodes": nodes("n1", "n2")}, headers=auth_headers)
    client.post(f"{API}/workflows/{wid}/versions", json={"name": "v2", "type": "major"}, headers=auth_headers)

    page = client.get(f"{API}/workflows/{wid}/versions", headers=auth_headers).json()
    assert [(v["version_number"], v["is_current"]) for v in page["items"]] == [(2, True), (1, False)]

    r = client.post(f"{API}/workflows/{wid}/versions/{v1}/restore", headers=auth_headers)
    assert r.status_code == 200 and r.json() == {"restored": True}

    current = client.get(f"{API}/workflows/{wid}/versions/current", headers=auth_headers).json()
    assert current["id"] == v1
    wf = client.get(f"{API}/workflows/{wid}", headers=auth_headers).json()
    assert wf["version"] == 1
    assert [n["id"] for n in wf["nodes"]] == ["n1"]

    r = client.post(f"{API}/workflows/{wid}/versions", json={"name": "x" * 101}, headers=auth_headers)
    assert r.status_code == 422


def test_current_version_is_null_before_first_version(client, auth_headers):
    wid = _create(client)
    r = client.get(f"{API}/workflows/{wid}/versions/current", headers=auth_headers)
    assert r.status_code == 200
    assert r.json() is None


def test_grants_flow(client, auth_headers):
    wid = _create(client)
    r = client.post(f"{API}/workflows/{wid}/grants", json={"user_id": BOB, "permission": "edit"}, headers=auth_headers)
    assert r.status_code == 201, r.text
    assert r.json()["user_name"] == "Bob Roe"

    r = client.post(f"{API}/workflows/{wid}/grants", json={"user_id": BOB}, headers=auth_headers)
    assert r.status_code == 409
    assert r.json()["error"]["code"] == "ALREADY_SHARED"

    r = client.post(f"{API}/workflows/{wid}/grants", json={"user_id": "u_ghost"}, headers=auth_headers)
    assert r.status_code == 404
    assert r.json()["error"]["code"] == "USER_NOT_FOUND"

    r = client.put(f"{API}/workflows/{wid}/grants/{BOB}", json={"permission": "admin"}, headers=auth_headers)
    assert r.json()["permission"] == "admin"

    grants = client.get(f"{API}/workflows/{wid}/grants", headers=auth(BOB)).json()
    assert [g["user_id"] for g in grants] == [BOB]
    assert client.get(f"{API}/workflows/{wid}/grants", headers=auth(CAROL)).status_code == 403

    assert client.get(f"{API}/workflows/{wid}", headers=auth_headers).json()["shared_with"] == [BOB]
    r = client.delete(f"{API}/workflows/{wid}/grants/{BOB}", headers=auth_headers)
    assert r.json() == {"count": 1}
    assert client.get(f"{API}/workflows/{wid}", headers=auth_headers).json()["shared_with"] == []


def test_user_search(client, auth_headers):
    r = client.get(f"{API}/users/search", params={"q": "o"}, headers=auth_headers)
    assert r.status_code == 200
    ids = [u["id"] for u in r.json()["items"]]
    assert OWNER not in ids
    assert BOB in ids and CAROL in ids


def test_create_with_status_is_422(client, auth_headers):
    r = client.post(
        f"{API}/workflows", json={"name": "Live", "status": "active", "nodes": nodes("n1")}, headers=auth_headers
    )
    assert r.status_code == 422
    assert r.json()["error"]["code"] == "VALIDATION_ERROR"
    assert client.get(f"{API}/workflows", headers=auth_headers).json()["total"] == 0


def test_logs_and_test_run_hidden_from_strangers(client):
    wid = _create(client, nodes=nodes("n1"))
    for path in (f"{API}/workflows/{wid}/logs", f"{API}/workflows/wf_missing/logs"):
        r = client.get(path, headers=auth(CAROL))
        assert r.status_code == 404
        assert r.json()["error"]["code"] == "NOT_FOUND"

    hidden = client.post(f"{API}/workflows/{wid}/test", headers=auth(CAROL))
    missing = client.post(f"{API}/workflows/wf_missing/test", headers=auth(CAROL))
    assert hidden.status_code == missing.status_code == 404
    assert hidden.json() == missing.json()
