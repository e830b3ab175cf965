"""
Integration tests for the role catalog, role assignment and project routes.

The module-scoped client registers admin@example.com first, so that account
holds the Administrator role. Everyone registered afterwards is a Team Member.
"""

import pytest

PASSWORD = "correct-horse-1"


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def _account(client, username: str) -> tuple[int, dict[str, str]]:
    """Register username, log in, and return (principal id, auth headers)."""
    email = f"{username}@taskgate.io"
    resp = client.post("/api/v1/auth/register", json={"username": username, "email": email, "password": PASSWORD})
    assert resp.status_code == 201, resp.text
    login = client.post("/api/v1/auth/login", json={"email": email, "password": PASSWORD})
    assert login.status_code == 200, login.text
    return resp.json()["id"], bearer(login.json()["tokens"]["access_token"])


def _role_id(client, headers, name: str) -> int:
    roles = client.get("/api/v1/roles", headers=headers).json()
    return next(r["id"] for r in roles if r["name"] == name)


@pytest.fixture
def admin(api_login) -> dict[str, str]:
    return bearer(api_login()["access_token"])


class TestRoleCatalog:
    def test_system_roles_are_listed(self, api_client, admin):
        client, _, _ = api_client
        resp = client.get("/api/v1/roles", headers=admin)
        assert resp.status_code == 200
        by_name = {r["name"]: r for r in resp.json()}
        assert {"Administrator", "Project Manager", "Team Member", "Viewer"} <= set(by_name)
        assert all(by_name[n]["is_system"] for n in ("Administrator", "Viewer"))
        assert "admin:roles" in by_name["Administrator"]["permissions"]

    def test_create_update_delete_custom_role(self, api_client, admin):
        client, _, _ = api_client
        created = client.post(
            "/api/v1/roles",
            json={"name": "Auditor", "description": "Reads reports", "permissions": ["reports:view"]},
            headers=admin,
        )
        assert created.status_code == 201
        role = created.json()
        assert role["is_system"] is False

        patched = client.patch(
            f"/api/v1/roles/{role['id']}",
            json={"permissions": ["reports:view", "reports:export"]},
            headers=admin,
        )
        assert patched.status_code == 200
        assert sorted(patched.json()["permissions"]) == ["reports:export", "reports:view"]

        assert client.delete(f"/api/v1/roles/{role['id']}", headers=admin).status_code == 204
        assert client.get(f"/api/v1/roles/{role['id']}", headers=admin).status_code == 404

    def test_duplicate_role_name_is_409(self, api_client, admin):
        client, _, _ = api_client
        resp = client.post("/api/v1/roles", json={"name": "Viewer"}, headers=admin)
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "role_name_taken"

    def test_unknown_permission_is_422(self, api_client, admin):
        client, _, _ = api_client
        resp = client.post("/api/v1/roles", json={"name": "Broken", "permissions": ["nope:never"]}, headers=admin)
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "unknown_permission"

    def test_system_role_is_immutable(self, api_client, admin):
        client, _, _ = api_client
        viewer_id = _role_id(client, admin, "Viewer")
        patched = client.patch(f"/api/v1/roles/{viewer_id}", json={"name": "Lurker"}, headers=admin)
        assert patched.status_code == 403
        assert patched.json()["error"]["code"] == "immutable_role"
        assert client.delete(f"/api/v1/roles/{viewer_id}", headers=admin).status_code == 403

    def test_team_member_cannot_create_roles(self, api_client):
        client, _, _ = api_client
        _, headers = _account(client, "roles_plain")
        resp = client.post("/api/v1/roles", json={"name": "Sneaky"}, headers=headers)
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "access_denied"


class TestRoleAssignment:
    def test_assign_grants_permissions(self, api_client, admin):
        client, _, _ = api_client
        pid, headers = _account(client, "assign_pm")
        pm_id = _role_id(client, admin, "Project Manager")

        resp = client.put(f"/api/v1/users/{pid}/roles/{pm_id}", headers=admin)
        assert resp.status_code == 201
        assert resp.json()["role_id"] == pm_id

        perms = client.get(f"/api/v1/users/{pid}/permissions", headers=headers)
        assert perms.status_code == 200
        assert "tasks:assign" in perms.json()["permissions"]

        names = {r["name"] for r in client.get(f"/api/v1/users/{pid}/roles", headers=headers).json()}
        assert names == {"Team Member", "Project Manager"}

    def test_duplicate_assignment_is_409(self, api_client, admin):
        client, _, _ = api_client
        pid, _ = _account(client, "assign_dup")
        member_id = _role_id(client, admin, "Team Member")
        resp = client.put(f"/api/v1/users/{pid}/roles/{member_id}", headers=admin)
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "already_assigned"

    def test_remove_missing_assignment_is_404(self, api_client, admin):
        client, _, _ = api_client
        pid, _ = _account(client, "assign_none")
        viewer_id = _role_id(client, admin, "Viewer")
        resp = client.delete(f"/api/v1/users/{pid}/roles/{viewer_id}", headers=admin)
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "assignment_not_found"

    def test_unknown_role_is_404(self, api_client, admin):
        client, _, _ = api_client
        pid, _ = _account(client, "assign_ghost")
        resp = client.put(f"/api/v1/users/{pid}/roles/99999", headers=admin)
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "role_not_found"

    def test_removed_role_takes_its_permissions(self, api_client, admin):
        client, _, _ = api_client
        pid, headers = _account(client, "assign_drop")
        member_id = _role_id(client, admin, "Team Member")
        assert client.delete(f"/api/v1/users/{pid}/roles/{member_id}", headers=admin).status_code == 204
        perms = client.get(f"/api/v1/users/{pid}/permissions", headers=headers).json()
        assert perms["permissions"] == []

    def test_other_users_permissions_need_users_view(self, api_client):
        client, _, _ = api_client
        _, headers = _account(client, "assign_nosy")
        other_id, _ = _account(client, "assign_target")
        resp = client.get(f"/api/v1/users/{other_id}/permissions", headers=headers)
        assert resp.status_code == 403


class TestProjects:
    def test_owner_member_viewer_scenario(self, api_client):
        client, _, _ = api_client
        owner_id, owner = _account(client, "proj_owner")
        member_id, member = _account(client, "proj_member")
        viewer_id, viewer = _account(client, "proj_viewer")
        _, stranger = _account(client, "proj_stranger")

        created = client.post("/api/v1/projects", json={"name": "Apollo", "description": "Moonshot"}, headers=owner)
        assert created.status_code == 201
        project = created.json()
        assert project["owner_id"] == owner_id
        base = f"/api/v1/projects/{project['id']}"

        assert client.post(f"{base}/members", json={"principal_id": member_id}, headers=owner).status_code == 201
        added = client.post(f"{base}/members", json={"principal_id": viewer_id, "role": "viewer"}, headers=owner)
        assert added.status_code == 201
        assert added.json()["role"] == "viewer"

        # read tier
        for headers in (owner, member, viewer):
            assert client.get(base, headers=headers).status_code == 200
        assert client.get(base, headers=stranger).status_code == 403

        # write tier
        assert client.patch(base, json={"name": "Apollo 11"}, headers=member).status_code == 200
        assert client.patch(base, json={"name": "Apollo 12"}, headers=viewer).status_code == 403

        # admin tier
        assert client.delete(base, headers=member).status_code == 403
        assert client.delete(base, headers=owner).status_code == 204
        assert client.get(base, headers=owner).status_code == 404

    def test_listing_shows_owned_and_joined_projects(self, api_client):
        client, _, _ = api_client
        _, owner = _account(client, "list_owner")
        member_id, member = _account(client, "list_member")
        mine = client.post("/api/v1/projects", json={"name": "Gemini"}, headers=owner).json()
        client.post(f"/api/v1/projects/{mine['id']}/members", json={"principal_id": member_id}, headers=owner)
        client.post("/api/v1/projects", json={"name": "Mercury"}, headers=member)

        names = {p["name"] for p in client.get("/api/v1/projects", headers=member).json()}
        assert {"Gemini", "Mercury"} <= names
        owner_names = {p["name"] for p in client.get("/api/v1/projects", headers=owner).json()}
        assert "Mercury" not in owner_names

    def test_membership_changes(self, api_client):
        client, _, _ = api_client
        owner_id, owner = _account(client, "mem_owner")
        member_id, member = _account(client, "mem_member")
        project = client.post("/api/v1/projects", json={"name": "Skylab"}, headers=owner).json()
        base = f"/api/v1/projects/{project['id']}/members"

        client.post(base, json={"principal_id": member_id}, headers=owner)
        dup = client.post(base, json={"principal_id": member_id}, headers=owner)
        assert dup.status_code == 409
        assert dup.json()["error"]["code"] == "already_member"
        assert client.post(base, json={"principal_id": owner_id}, headers=owner).status_code == 409

        assert client.patch(f"{base}/{member_id}", json={"role": "viewer"}, headers=owner).status_code == 204
        listed = client.get(base, headers=member).json()
        assert {(m["principal_id"], m["role"]) for m in listed} >= {(member_id, "viewer")}

        assert client.delete(f"{base}/{member_id}", headers=owner).status_code == 204
        assert client.get(f"/api/v1/projects/{project['id']}", headers=member).status_code == 403
        gone = client.delete(f"{base}/{member_id}", headers=owner)
        assert gone.status_code == 404
        assert gone.json()["error"]["code"] == "member_not_found"

    def test_owner_role_cannot_be_granted(self, api_client):
        client, _, _ = api_client
        _, owner = _account(client, "mem_grant")
        other_id, _ = _account(client, "mem_grantee")
        project = client.post("/api/v1/projects", json={"name": "Vostok"}, headers=owner).json()
        resp = client.post(
            f"/api/v1/projects/{project['id']}/members",
            json={"principal_id": other_id, "role": "owner"},
            headers=owner,
        )
        assert resp.status_code == 422

    def test_missing_project_is_404(self, api_client):
        client, _, _ = api_client
        _, headers = _account(client, "proj_lost")
        resp = client.get("/api/v1/projects/99999", headers=headers)
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "project_not_found"
