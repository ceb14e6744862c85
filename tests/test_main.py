from fastapi.testclient import TestClient


def test_health_check(client: TestClient) -> None:
    """Test the health check endpoint."""
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["database"] == "memory"
    assert data["change_feed"] == "MemoryChangeFeedClient"
    assert "version" in data


def test_random_routes_registered(client: TestClient) -> None:
    paths = {route.path for route in client.app.routes}
    assert "/api/random/ws/{user_id}" in paths
    assert "/api/conversations/direct" in paths
