from __future__ import annotations

import asyncio

import pytest
from fastapi.testclient import TestClient
from langchain_core.runnables import RunnableLambda
from starlette.websockets import WebSocketDisconnect

from conftest import TickingClock
from marketplace.config.auth_config import AuthConfig
from marketplace.config.llm_config import LlmConfig
from marketplace.controllers.chat_controller import _pump
from marketplace.main import create_app
from marketplace.models.recommendation import RecommendProductsOutput
from marketplace.services.auth_service import AuthService, get_auth_service
from marketplace.services.catalog_service import CatalogService, get_catalog_service
from marketplace.services.conversation_service import ConversationService, get_conversation_service
from marketplace.services.profile_service import ProfileService, get_profile_service
from marketplace.services.recommendation_service import RecommendationService, get_recommendation_service
from marketplace.store.base import StoreError, StoreErrorCode
from marketplace.store.memory_store import InMemoryDocumentStore


class ProfileWriteOutage(InMemoryDocumentStore):
    """Store whose next profile insert fails as if the backend were down."""

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self.fail_next_create = True

    async def create_if_absent(self, collection, doc_id, data):
        if self.fail_next_create:
            self.fail_next_create = False
            raise StoreError(StoreErrorCode.UNAVAILABLE, "backend down")
        return await super().create_if_absent(collection, doc_id, data)


def _no_recommendations(prompt_value) -> RecommendProductsOutput:
    return RecommendProductsOutput(products=[])


def _build_client(store: InMemoryDocumentStore, app_config) -> TestClient:
    auth = AuthService(AuthConfig(bcrypt_rounds=4))
    profiles = ProfileService(store=store, app_config=app_config)
    catalog = CatalogService(store=store, app_config=app_config)
    conversations = ConversationService(store=store, profile_service=profiles, app_config=app_config)
    recommender = RecommendationService(
        llm_config=LlmConfig(LLM_API_KEY=None),
        structured_llm=RunnableLambda(_no_recommendations),
    )

    app = create_app()
    app.dependency_overrides[get_auth_service] = lambda: auth
    app.dependency_overrides[get_profile_service] = lambda: profiles
    app.dependency_overrides[get_catalog_service] = lambda: catalog
    app.dependency_overrides[get_conversation_service] = lambda: conversations
    app.dependency_overrides[get_recommendation_service] = lambda: recommender
    return TestClient(app)


@pytest.fixture
def client(store: InMemoryDocumentStore, app_config) -> TestClient:
    return _build_client(store, app_config)


def _sign_up(client: TestClient, name: str) -> tuple[str, dict]:
    response = client.post(
        "/auth/signup",
        json={
            "email": f"{name}@example.com",
            "password": "secret123",
            "profile": {"first_name": name.capitalize(), "last_name": "Doe", "username": name},
        },
    )
    assert response.status_code == 201
    session = response.json()
    return session["token"], {"Authorization": f"Bearer {session['token']}"}


def _list_product(client: TestClient, headers: dict, name: str = "Road Bike") -> dict:
    response = client.post(
        "/products",
        headers=headers,
        json={"name": name, "description": "Barely used", "price": 300, "category": "Sports"},
    )
    assert response.status_code == 201
    return response.json()


def test_health(client: TestClient) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_auth_flow_and_profile(client: TestClient) -> None:
    token, headers = _sign_up(client, "alice")

    me = client.get("/profiles/me", headers=headers)
    assert me.status_code == 200
    assert me.json()["username"] == "alice"

    login = client.post("/auth/login", json={"email": "alice@example.com", "password": "wrong"})
    assert login.status_code == 401
    assert login.json()["error_type"] == "invalid_credentials"

    assert client.post("/auth/logout", headers=headers).status_code == 204
    assert client.get("/profiles/me", headers=headers).status_code == 401


def test_duplicate_signup_conflicts(client: TestClient) -> None:
    _sign_up(client, "alice")
    response = client.post(
        "/auth/signup",
        json={
            "email": "alice@example.com",
            "password": "secret123",
            "profile": {"first_name": "A", "last_name": "B", "username": "alice2"},
        },
    )
    assert response.status_code == 409


def test_signup_rolls_back_account_when_profile_write_fails(app_config) -> None:
    client = _build_client(ProfileWriteOutage(clock=TickingClock()), app_config)
    payload = {
        "email": "alice@example.com",
        "password": "secret123",
        "profile": {"first_name": "Alice", "last_name": "Doe", "username": "alice"},
    }

    failed = client.post("/auth/signup", json=payload)
    assert failed.status_code == 503
    assert failed.json()["error_type"] == "collaborator_unavailable"
    login = client.post("/auth/login", json={"email": "alice@example.com", "password": "secret123"})
    assert login.status_code == 401

    retried = client.post("/auth/signup", json=payload)
    assert retried.status_code == 201
    headers = {"Authorization": f"Bearer {retried.json()['token']}"}
    assert client.get("/profiles/me", headers=headers).json()["username"] == "alice"


def test_protected_routes_require_bearer_scheme(client: TestClient) -> None:
    token, _ = _sign_up(client, "alice")
    assert client.get("/profiles/me", headers={"Authorization": f"Basic {token}"}).status_code == 401
    assert client.get("/profiles/me", headers={"Authorization": "Bearer not-a-jwt"}).status_code == 401
    assert client.get("/profiles/me").status_code == 401
    assert client.get("/profiles/me", headers={"Authorization": f"bearer {token}"}).status_code == 200


def test_catalog_endpoints(client: TestClient) -> None:
    _, seller = _sign_up(client, "seller")
    bike = _list_product(client, seller)
    _list_product(client, seller, "Bike Helmet")

    listed = client.get("/products", params={"q": "helmet"})
    assert [item["name"] for item in listed.json()] == ["Bike Helmet"]

    facets = client.get("/products/facets").json()
    assert facets == {"categories": ["Sports"], "max_price": 300.0}

    _, other = _sign_up(client, "other")
    forbidden = client.patch(f"/products/{bike['id']}", headers=other, json={"price": 1})
    assert forbidden.status_code == 403

    mine = client.get("/profiles/me/products", headers=seller).json()
    assert {item["name"] for item in mine} == {"Road Bike", "Bike Helmet"}

    assert client.delete(f"/products/{bike['id']}", headers=seller).status_code == 204
    assert client.get(f"/products/{bike['id']}").status_code == 404

    recommended = client.post("/products/recommendations", json={"search_query": "helmet"})
    assert recommended.status_code == 200
    assert recommended.json() == {"search_query": "helmet", "products": []}


def test_create_product_requires_sign_in(client: TestClient) -> None:
    response = client.post(
        "/products", json={"name": "Lamp", "description": "Warm", "price": 5, "category": "Home"}
    )
    assert response.status_code == 401


@pytest.mark.parametrize("field", ["name", "price", "description", "category"])
def test_product_update_rejects_null_for_required_fields(client: TestClient, field: str) -> None:
    _, seller = _sign_up(client, "seller")
    bike = _list_product(client, seller)

    response = client.patch(f"/products/{bike['id']}", headers=seller, json={field: None})
    assert response.status_code == 422

    listed = client.get("/products")
    assert listed.status_code == 200
    assert [item["name"] for item in listed.json()] == ["Road Bike"]
    assert client.get(f"/products/{bike['id']}").json()[field] == bike[field]


def test_product_update_may_clear_image_hint(client: TestClient) -> None:
    _, seller = _sign_up(client, "seller")
    bike = _list_product(client, seller)
    client.patch(f"/products/{bike['id']}", headers=seller, json={"image_hint": "red bike"})

    cleared = client.patch(f"/products/{bike['id']}", headers=seller, json={"image_hint": None})
    assert cleared.status_code == 200
    assert cleared.json()["image_hint"] is None


def test_inverted_price_range_is_a_validation_error(client: TestClient) -> None:
    _, seller = _sign_up(client, "seller")
    _list_product(client, seller)

    inverted = client.get("/products", params={"min_price": 10, "max_price": 1})
    assert inverted.status_code == 422
    assert inverted.json()["detail"][0]["loc"][0] == "query"

    in_range = client.get("/products", params={"min_price": 100, "max_price": 300})
    assert [item["name"] for item in in_range.json()] == ["Road Bike"]


def test_contact_seller_and_exchange_messages(client: TestClient) -> None:
    _, seller = _sign_up(client, "seller")
    _, buyer = _sign_up(client, "buyer")
    product = _list_product(client, seller)

    opened = client.post("/conversations", headers=buyer, json={"product_id": product["id"]})
    assert opened.status_code == 201
    body = opened.json()
    assert body["created"] is True
    conversation = body["conversation"]
    assert conversation["product_context"]["product_id"] == product["id"]
    assert conversation["counterpart"]["display_name"] == "seller"
    assert conversation["counterpart"]["avatar_url"] == product["image_url"]

    reopened = client.post("/conversations", headers=buyer, json={"product_id": product["id"]})
    assert reopened.status_code == 200
    assert reopened.json()["conversation"]["id"] == conversation["id"]

    cid = conversation["id"]
    sent = client.post(f"/conversations/{cid}/messages", headers=buyer, json={"text": "Is it available?"})
    assert sent.status_code == 201
    reply = client.post(f"/conversations/{cid}/messages", headers=seller, json={"text": "Yes"})
    assert reply.status_code == 201

    messages = client.get(f"/conversations/{cid}/messages", headers=seller).json()
    assert [message["text"] for message in messages] == ["Is it available?", "Yes"]

    inbox = client.get("/conversations", headers=seller).json()
    assert inbox[0]["id"] == cid
    assert inbox[0]["last_message"]["text"] == "Yes"
    assert inbox[0]["counterpart"]["display_name"] == "buyer"


def test_conversation_errors(client: TestClient) -> None:
    _, seller = _sign_up(client, "seller")
    _, buyer = _sign_up(client, "buyer")
    _, outsider = _sign_up(client, "outsider")
    product = _list_product(client, seller)

    own = client.post("/conversations", headers=seller, json={"product_id": product["id"]})
    assert own.status_code == 400
    assert own.json()["error_type"] == "invalid_participants"

    missing_target = client.post("/conversations", headers=buyer, json={})
    assert missing_target.status_code == 422

    cid = client.post("/conversations", headers=buyer, json={"product_id": product["id"]}).json()[
        "conversation"
    ]["id"]
    blank = client.post(f"/conversations/{cid}/messages", headers=buyer, json={"text": "   "})
    assert blank.status_code == 422
    assert blank.json()["error_type"] == "empty_message"

    intruder = client.post(f"/conversations/{cid}/messages", headers=outsider, json={"text": "hey"})
    assert intruder.status_code == 403
    assert client.get(f"/conversations/{cid}", headers=outsider).status_code == 403
    assert client.get("/conversations/unknown", headers=buyer).status_code == 404


def test_message_socket_pushes_new_messages(client: TestClient) -> None:
    seller_token, seller = _sign_up(client, "seller")
    _, buyer = _sign_up(client, "buyer")
    product = _list_product(client, seller)
    cid = client.post("/conversations", headers=buyer, json={"product_id": product["id"]}).json()[
        "conversation"
    ]["id"]

    with client.websocket_connect(f"/ws/conversations/{cid}/messages?token={seller_token}") as socket:
        assert socket.receive_json() == []
        client.post(f"/conversations/{cid}/messages", headers=buyer, json={"text": "Hello"})
        frame = socket.receive_json()
        assert [message["text"] for message in frame] == ["Hello"]


def test_conversation_socket_pushes_confirmed_list(client: TestClient) -> None:
    seller_token, seller = _sign_up(client, "seller")
    _, buyer = _sign_up(client, "buyer")
    product = _list_product(client, seller)

    with client.websocket_connect(f"/ws/conversations?token={seller_token}") as socket:
        assert socket.receive_json() == []
        client.post("/conversations", headers=buyer, json={"product_id": product["id"]})
        frame = socket.receive_json()
        assert len(frame) == 1
        assert frame[0]["counterpart"]["display_name"] == "buyer"


def test_sockets_reject_unauthenticated_and_outsiders(client: TestClient) -> None:
    _, seller = _sign_up(client, "seller")
    _, buyer = _sign_up(client, "buyer")
    outsider_token, _ = _sign_up(client, "outsider")
    product = _list_product(client, seller)
    cid = client.post("/conversations", headers=buyer, json={"product_id": product["id"]}).json()[
        "conversation"
    ]["id"]

    with pytest.raises(WebSocketDisconnect) as unauthenticated:
        with client.websocket_connect("/ws/conversations?token=bogus") as socket:
            socket.receive_json()
    assert unauthenticated.value.code == 4401

    with pytest.raises(WebSocketDisconnect) as outsider:
        with client.websocket_connect(f"/ws/conversations/{cid}/messages?token={outsider_token}") as socket:
            socket.receive_json()
    assert outsider.value.code == 4403


def test_message_timestamps_follow_commit_order(client: TestClient) -> None:
    _, seller = _sign_up(client, "seller")
    _, buyer = _sign_up(client, "buyer")
    product = _list_product(client, seller)
    cid = client.post("/conversations", headers=buyer, json={"product_id": product["id"]}).json()[
        "conversation"
    ]["id"]
    for text in ["one", "two", "three"]:
        client.post(f"/conversations/{cid}/messages", headers=buyer, json={"text": text})

    messages = client.get(f"/conversations/{cid}/messages", headers=buyer).json()
    assert [message["text"] for message in messages] == ["one", "two", "three"]
    stamps = [message["created_at"] for message in messages]
    assert stamps == sorted(stamps)


class _FiniteStream:
    def __init__(self, frames) -> None:
        self._frames = list(frames)
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True

    def __aiter__(self):
        return self

    async def __anext__(self):
        if self.cancelled or not self._frames:
            raise StopAsyncIteration
        return self._frames.pop(0)


class _IdleSocket:
    def __init__(self) -> None:
        self.sent = []
        self.receive_cancelled = False

    async def receive(self):
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            self.receive_cancelled = True
            raise

    async def send_json(self, data) -> None:
        await asyncio.sleep(0)
        self.sent.append(data)


def test_pump_waits_for_disconnect_watcher_to_finish() -> None:
    socket = _IdleSocket()
    stream = _FiniteStream([["a"], ["a", "b"]])

    asyncio.run(_pump(socket, stream, lambda items: items))

    assert socket.sent == [["a"], ["a", "b"]]
    assert stream.cancelled is True
    assert socket.receive_cancelled is True
