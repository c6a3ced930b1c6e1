from urllib.parse import urljoin

from conftest import auth


def test_health(client):
    assert client.get("/").json() == {"message": "Portfolio publishing API running"}


def test_publishing_requires_a_session(client, alice_portfolio):
    for headers in ({}, {"Authorization": "Bearer nope"}, {"Authorization": "Basic abc"}):
        response = client.post("/sites/sub-publish", json={"portfolioId": alice_portfolio, "customSubdomain": "x"},
                               headers=headers)

        assert response.status_code == 401
        assert response.json()["success"] is False


def test_sub_publish_and_serve(client, alice, alice_portfolio):
    response = client.post("/sites/sub-publish", json={"portfolioId": alice_portfolio, "customSubdomain": "User.Name!! "},
                           headers=auth(alice))

    body = response.json()
    assert response.status_code == 200
    assert body["success"] is True
    assert body["data"]["subdomain"] == "user-name"
    assert body["data"]["url"] == "https://example.test/user-name/html"
    assert body["data"]["site"]["id"]

    page = client.get("/sites/user-name")
    assert page.status_code == 200
    assert page.headers["content-type"].startswith("text/html")
    assert "Alice Martin" in page.text

    case_study = client.get("/sites/user-name/case-study/p2")
    assert case_study.status_code == 200
    assert "currently being developed" in case_study.text


def test_sub_publish_requires_custom_subdomain(client, alice, alice_portfolio):
    response = client.post("/sites/sub-publish", json={"portfolioId": alice_portfolio}, headers=auth(alice))

    body = response.json()
    assert response.status_code == 400
    assert body["success"] is False
    assert body["error"]["code"] == "VALIDATION_ERROR"
    assert body["error"]["suggestions"]


def test_sub_publish_rejects_malformed_subdomain(client, alice, alice_portfolio):
    response = client.post("/sites/sub-publish", json={"portfolioId": alice_portfolio, "customSubdomain": "ab"},
                           headers=auth(alice))

    assert response.status_code == 400
    assert "at least 3" in response.json()["message"]


def test_taken_subdomain_returns_conflict(client, alice, alice_portfolio, bob, make_portfolio):
    client.post("/sites/sub-publish", json={"portfolioId": alice_portfolio, "customSubdomain": "alice"},
                headers=auth(alice))
    bob_portfolio = make_portfolio(bob, name="Bob Stone")

    response = client.post("/sites/sub-publish", json={"portfolioId": bob_portfolio, "customSubdomain": "alice"},
                           headers=auth(bob))

    body = response.json()
    assert response.status_code == 409
    assert body["success"] is False
    assert body["error"]["code"] == "CONFLICT"
    assert "alice-portfolio" in body["error"]["suggestions"]


def test_other_users_portfolio_is_forbidden(client, alice_portfolio, bob):
    response = client.get("/sites/status", params={"portfolioId": alice_portfolio}, headers=auth(bob))

    assert response.status_code == 403
    assert response.json()["error"]["code"] == "FORBIDDEN"


def test_rename_through_api(client, alice, alice_portfolio):
    client.post("/sites/sub-publish", json={"portfolioId": alice_portfolio, "customSubdomain": "alice"},
                headers=auth(alice))

    response = client.post("/sites/sub-publish", json={"portfolioId": alice_portfolio, "customSubdomain": "alice-design"},
                           headers=auth(alice))

    assert response.json()["data"]["renamedFrom"] == "alice"
    assert client.get("/sites/alice").status_code == 404
    assert client.get("/sites/alice-design").status_code == 200


def test_status_and_unpublish(client, alice, alice_portfolio):
    params = {"portfolioId": alice_portfolio}
    before = client.get("/sites/status", params=params, headers=auth(alice)).json()
    assert before["data"]["status"] == "not_published"

    client.post("/sites/sub-publish", json={"portfolioId": alice_portfolio, "customSubdomain": "alice"},
                headers=auth(alice))
    published = client.get("/sites/status", params=params, headers=auth(alice)).json()["data"]
    assert published["published"] is True
    assert published["subdomain"] == "alice"
    assert published["status"] == "success"

    response = client.delete(f"/sites/unpublish/{alice_portfolio}", headers=auth(alice))
    assert response.status_code == 200
    assert response.json()["success"] is True

    after = client.get("/sites/status", params=params, headers=auth(alice)).json()
    assert after["data"]["status"] == "not_published"
    assert client.get("/sites/alice").status_code == 404
    assert client.delete(f"/sites/unpublish/{alice_portfolio}", headers=auth(alice)).status_code == 404


def test_remote_publish(client, provider, alice, alice_portfolio):
    response = client.post("/sites/publish", json={"portfolioId": alice_portfolio}, headers=auth(alice))

    data = response.json()["data"]
    assert response.status_code == 200
    assert data["deploymentId"] == "dpl_123"
    assert data["url"] == "https://alice-martin.vercel.app"
    assert "vercel.json" in data["files"]


def test_remote_provider_failure(client, mongo, provider, alice, alice_portfolio):
    provider.create_status = 500
    provider.create_body = {"error": {"message": "Internal error"}}

    response = client.post("/sites/publish", json={"portfolioId": alice_portfolio}, headers=auth(alice))

    body = response.json()
    assert response.status_code == 502
    assert body["success"] is False
    assert body["error"]["code"] == "UPSTREAM_ERROR"
    assert body["error"]["providerStatus"] == 500
    assert mongo["site"].count_documents({}) == 0


def test_refresh_deployment(client, provider, alice, alice_portfolio):
    client.post("/sites/publish", json={"portfolioId": alice_portfolio}, headers=auth(alice))

    response = client.post("/sites/deployment/refresh", json={"portfolioId": alice_portfolio}, headers=auth(alice))

    assert response.json()["data"]["readyState"] == "READY"


def test_site_config(client, alice, alice_portfolio):
    client.post("/sites/sub-publish", json={"portfolioId": alice_portfolio, "customSubdomain": "alice"},
                headers=auth(alice))
    params = {"portfolioId": alice_portfolio}

    updated = client.put("/sites/config", params=params, json={"title": "Studio Alice", "customDomain": "alice.studio"},
                         headers=auth(alice))
    config = client.get("/sites/config", params=params, headers=auth(alice)).json()["data"]

    assert updated.status_code == 200
    assert config["title"] == "Studio Alice"
    assert config["customDomain"] == "alice.studio"
    assert config["url"] == "https://example.test/alice/html"


def test_analytics_view_is_public(client, alice, alice_portfolio):
    client.post("/sites/sub-publish", json={"portfolioId": alice_portfolio, "customSubdomain": "alice"},
                headers=auth(alice))

    client.post("/sites/analytics/view", json={"subdomain": "alice", "uniqueVisitor": True})
    response = client.post("/sites/analytics/view", json={"subdomain": "alice"}, headers={"Referer": "https://dribbble.com"})

    assert response.json()["data"] == {"viewCount": 2, "uniqueVisitors": 1}
    referrers = client.get("/sites/config", params={"portfolioId": alice_portfolio},
                           headers=auth(alice)).json()["data"]["analytics"]["referrers"]
    assert [(r["source"], r["count"]) for r in referrers] == [("https://dribbble.com", 1)]
    assert client.post("/sites/analytics/view", json={"subdomain": "nobody"}).status_code == 404


def test_subdomain_check(client, alice, alice_portfolio):
    response = client.get("/sites/subdomain/check", params={"subdomain": "Fresh Name"}, headers=auth(alice))

    assert response.json()["data"]["available"] is True
    assert response.json()["data"]["subdomain"] == "fresh-name"


def test_invalid_body_uses_failure_envelope(client, alice):
    response = client.post("/sites/publish", json={}, headers=auth(alice))

    body = response.json()
    assert response.status_code == 400
    assert body["success"] is False
    assert body["error"]["code"] == "VALIDATION_ERROR"


def test_fixed_routes_are_not_treated_as_subdomains(client, alice):
    response = client.get("/sites/status", headers=auth(alice))

    assert response.status_code == 400
    assert response.json()["success"] is False


def test_served_pages_link_to_each_other(client, alice, alice_portfolio):
    client.post("/sites/sub-publish", json={"portfolioId": alice_portfolio, "customSubdomain": "alice"},
                headers=auth(alice))

    bare = client.get("/sites/alice", follow_redirects=False)
    assert bare.status_code == 307
    assert bare.headers["location"] == "/sites/alice/"

    index = client.get("/sites/alice/")
    assert index.status_code == 200
    assert 'href="case-study-p1.html"' in index.text

    case_study = client.get(urljoin("/sites/alice/", "case-study-p1.html"))
    assert case_study.status_code == 200
    assert 'href="index.html"' in case_study.text
    assert client.get(urljoin("/sites/alice/case-study-p1.html", "index.html")).text == index.text

    legacy = client.get("/sites/alice/case-study/p1", follow_redirects=False)
    assert legacy.headers["location"] == "/sites/alice/case-study-p1.html"


def test_only_published_files_are_served(client, alice, alice_portfolio):
    client.post("/sites/sub-publish", json={"portfolioId": alice_portfolio, "customSubdomain": "alice"},
                headers=auth(alice))

    assert client.get("/sites/alice/case-study-p3.html").status_code == 404
    assert client.get("/sites/alice/vercel.json").status_code == 404
    assert client.get("/sites/case-study-p1.html").status_code == 404


def test_remote_site_redirects_to_provider(client, provider, alice, alice_portfolio):
    client.post("/sites/sub-publish", json={"portfolioId": alice_portfolio, "customSubdomain": "alice"},
                headers=auth(alice))
    client.post("/sites/publish", json={"portfolioId": alice_portfolio}, headers=auth(alice))

    response = client.get("/sites/alice", follow_redirects=False)

    assert response.status_code == 307
    assert response.headers["location"] == "https://alice-martin.vercel.app"
    assert client.get("/sites/alice/").status_code == 404
