from datetime import datetime, timezone
from typing import Any, Dict, List
from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from chatmatch.errors import PersistenceError, ProvisionError
from chatmatch.models.api.conversations import (
    ConversationKind,
    ConversationResponse,
    ConversationStatus,
)

LIST_CONVERSATIONS = (
    "chatmatch.services.list_conversations_service"
    ".ListConversationsService.list_conversations"
)
OPEN_DIRECT = (
    "chatmatch.services.direct_conversation_service"
    ".DirectConversationService.open_direct"
)
GET_CONVERSATION = (
    "chatmatch.services.list_conversations_service"
    ".ListConversationsService.get_conversation_summary"
)


def open_direct(client: TestClient, user_id: str, other_user_id: str) -> Dict[str, Any]:
    response = client.post(
        "/api/conversations/direct",
        json={"user_id": user_id, "other_user_id": other_user_id},
    )
    assert response.status_code == 200
    return response.json()


class TestConversationsRouter:
    """Tests for the conversations router endpoints."""

    @pytest.fixture
    def sample_conversations(self) -> List[ConversationResponse]:
        """Sample conversation responses."""
        now = datetime.now(timezone.utc)
        return [
            ConversationResponse(
                id=uuid4(),
                type=ConversationKind.RANDOM,
                creator_id="alice",
                status=ConversationStatus.ACCEPTED,
                created_at=now,
                last_message_at=now,
                participants=["alice", "bob"],
            ),
            ConversationResponse(
                id=uuid4(),
                type=ConversationKind.DIRECT,
                creator_id="carol",
                status=ConversationStatus.PENDING,
                created_at=now,
                last_message_at=now,
                participants=["carol", "alice"],
            ),
        ]

    def test_list_requires_user_id(self, client: TestClient) -> None:
        response = client.get("/api/conversations")
        assert response.status_code == 422

    def test_list_empty_for_new_user(self, client: TestClient) -> None:
        response = client.get("/api/conversations?user_id=alice")
        assert response.status_code == 200
        assert response.json() == []

    def test_list_calls_service(
        self, client: TestClient, sample_conversations: List[ConversationResponse]
    ) -> None:
        """Test that the list endpoint passes its parameters to the service."""
        with patch(
            LIST_CONVERSATIONS,
            new_callable=AsyncMock,
            return_value=sample_conversations,
        ) as mock_service:
            response = client.get(
                "/api/conversations?user_id=alice&include_archived=true"
                "&limit=10&offset=5"
            )
            assert response.status_code == 200
            assert len(response.json()) == 2

            args, kwargs = mock_service.call_args
            assert args == ("alice",)
            assert kwargs["include_archived"] is True
            assert kwargs["limit"] == 10
            assert kwargs["offset"] == 5

    def test_list_validation_invalid_limit(self, client: TestClient) -> None:
        response = client.get("/api/conversations?user_id=alice&limit=0")
        assert response.status_code == 422
        assert "greater_than_equal" in str(response.json())

        response = client.get("/api/conversations?user_id=alice&limit=1001")
        assert response.status_code == 422
        assert "less_than_equal" in str(response.json())

    def test_list_validation_invalid_offset(self, client: TestClient) -> None:
        response = client.get("/api/conversations?user_id=alice&offset=-1")
        assert response.status_code == 422

    def test_list_store_failure(self, client: TestClient) -> None:
        with patch(
            LIST_CONVERSATIONS,
            new_callable=AsyncMock,
            side_effect=PersistenceError("connection refused"),
        ):
            response = client.get("/api/conversations?user_id=alice")
            assert response.status_code == 503

    def test_list_service_error_handling(self, client: TestClient) -> None:
        with patch(
            LIST_CONVERSATIONS,
            new_callable=AsyncMock,
            side_effect=Exception("Service error"),
        ):
            response = client.get("/api/conversations?user_id=alice")
            assert response.status_code == 500
            assert "Internal server error" in response.json()["detail"]

    def test_open_direct_conversation(self, client: TestClient) -> None:
        conversation = open_direct(client, "alice", "bob")

        assert conversation["type"] == "direct"
        assert conversation["status"] == "pending"
        assert conversation["creator_id"] == "alice"
        assert sorted(conversation["participants"]) == ["alice", "bob"]

    def test_open_direct_conversation_is_idempotent(self, client: TestClient) -> None:
        first = open_direct(client, "alice", "bob")
        second = open_direct(client, "bob", "alice")

        assert first["id"] == second["id"]
        response = client.get("/api/conversations?user_id=alice")
        assert len(response.json()) == 1

    def test_open_direct_conversation_with_self(self, client: TestClient) -> None:
        response = client.post(
            "/api/conversations/direct",
            json={"user_id": "alice", "other_user_id": "alice"},
        )
        assert response.status_code == 400

    def test_open_direct_conversation_store_failure(self, client: TestClient) -> None:
        error = ProvisionError("Could not create conversation: connection refused")
        error.__cause__ = PersistenceError("connection refused")

        with patch(
            OPEN_DIRECT,
            new_callable=AsyncMock,
            side_effect=error,
        ):
            response = client.post(
                "/api/conversations/direct",
                json={"user_id": "alice", "other_user_id": "bob"},
            )
            assert response.status_code == 503

    def test_open_direct_conversation_missing_field(self, client: TestClient) -> None:
        response = client.post("/api/conversations/direct", json={"user_id": "alice"})
        assert response.status_code == 422

    def test_get_conversation(self, client: TestClient) -> None:
        conversation = open_direct(client, "alice", "bob")

        response = client.get(f"/api/conversations/{conversation['id']}")
        assert response.status_code == 200
        assert response.json() == conversation

    def test_get_conversation_not_found(self, client: TestClient) -> None:
        response = client.get(f"/api/conversations/{uuid4()}")
        assert response.status_code == 404
        assert "not found" in response.json()["detail"].lower()

    def test_get_conversation_invalid_uuid(self, client: TestClient) -> None:
        response = client.get("/api/conversations/invalid-uuid")
        assert response.status_code == 422

    def test_get_conversation_service_error_handling(
        self, client: TestClient
    ) -> None:
        with patch(
            GET_CONVERSATION,
            new_callable=AsyncMock,
            side_effect=Exception("Service error"),
        ):
            response = client.get(f"/api/conversations/{uuid4()}")
            assert response.status_code == 500

    def test_accept_request(self, client: TestClient) -> None:
        conversation = open_direct(client, "alice", "bob")

        response = client.post(f"/api/conversations/{conversation['id']}/accept")
        assert response.status_code == 200
        assert response.json()["status"] == "accepted"

        # Already resolved
        response = client.post(f"/api/conversations/{conversation['id']}/reject")
        assert response.status_code == 409

    def test_reject_request(self, client: TestClient) -> None:
        conversation = open_direct(client, "alice", "bob")

        response = client.post(f"/api/conversations/{conversation['id']}/reject")
        assert response.status_code == 200
        assert response.json()["status"] == "rejected"

    def test_accept_unknown_conversation(self, client: TestClient) -> None:
        response = client.post(f"/api/conversations/{uuid4()}/accept")
        assert response.status_code == 404

    def test_archive_hides_conversation_for_one_user(self, client: TestClient) -> None:
        conversation = open_direct(client, "alice", "bob")

        response = client.post(
            f"/api/conversations/{conversation['id']}/archive?user_id=alice"
        )
        assert response.status_code == 200
        assert response.json() == {"status": "archived"}

        assert client.get("/api/conversations?user_id=alice").json() == []
        assert len(client.get("/api/conversations?user_id=bob").json()) == 1
        archived = client.get(
            "/api/conversations?user_id=alice&include_archived=true"
        ).json()
        assert [c["id"] for c in archived] == [conversation["id"]]

    def test_archive_by_non_participant(self, client: TestClient) -> None:
        conversation = open_direct(client, "alice", "bob")

        response = client.post(
            f"/api/conversations/{conversation['id']}/archive?user_id=mallory"
        )
        assert response.status_code == 404

    def test_wrong_http_method_conversations(self, client: TestClient) -> None:
        response = client.post("/api/conversations")
        assert response.status_code == 405

        response = client.delete("/api/conversations")
        assert response.status_code == 405
