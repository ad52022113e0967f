"""
Test configuration and fixtures for chat tests.

This module provides:
- Users holding each role in a shared group chat
- Group, channel and dialog chat fixtures
- A fresh ListenerRegistry installed as the app's registry per test
- Service instances wired to that registry
- API client helpers for authenticated requests

Usage:
    def test_example(group_chat, member_client):
        response = member_client.get(f"/api/v1/chat/chats/{group_chat.id}/")
        assert response.status_code == 200
"""

import pytest
from django.apps import apps
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken

from authentication.tests.factories import UserFactory
from chat.models import ChatRole, ChatType
from chat.registry import ListenerRegistry
from chat.services import ChatAssemblyService, ChatService, MessageDispatcher
from chat.stores import DjangoChatStore
from chat.tests.factories import ChatFactory, ChatMemberFactory, MessageFactory


# =============================================================================
# User Fixtures
# =============================================================================


@pytest.fixture
def admin_user(db):
    """Create a user who will be a chat admin."""
    return UserFactory(name="Alice")


@pytest.fixture
def member_user(db):
    """Create a user who will be a chat member."""
    return UserFactory(name="Bob")


@pytest.fixture
def viewer_user(db):
    """Create a user who will be a chat viewer."""
    return UserFactory(name="Carol")


@pytest.fixture
def outsider_user(db):
    """Create a user who is not in any test chat."""
    return UserFactory(name="Mallory")


# =============================================================================
# Chat Fixtures
# =============================================================================


@pytest.fixture
def group_chat(db, admin_user, member_user, viewer_user):
    """
    Create a group with one user per role.

    admin_user is Admin, member_user is Member, viewer_user is Viewer.
    """
    chat = ChatFactory(chat_type=ChatType.GROUP, name="Project Team")
    ChatMemberFactory(chat=chat, user=admin_user, role=ChatRole.ADMIN)
    ChatMemberFactory(chat=chat, user=member_user, role=ChatRole.MEMBER)
    ChatMemberFactory(chat=chat, user=viewer_user, role=ChatRole.VIEWER)
    return chat


@pytest.fixture
def channel_chat(db, admin_user, viewer_user):
    """Create a channel administered by admin_user with viewer_user reading."""
    chat = ChatFactory(chat_type=ChatType.CHANNEL, name="Announcements")
    ChatMemberFactory(chat=chat, user=admin_user, role=ChatRole.ADMIN)
    ChatMemberFactory(chat=chat, user=viewer_user, role=ChatRole.VIEWER)
    return chat


@pytest.fixture
def dialog_chat(db, admin_user, member_user):
    """Create a dialog between admin_user and member_user."""
    chat = ChatFactory(chat_type=ChatType.DIALOG, name="")
    ChatMemberFactory(chat=chat, user=admin_user, role=ChatRole.MEMBER)
    ChatMemberFactory(chat=chat, user=member_user, role=ChatRole.MEMBER)
    return chat


@pytest.fixture
def chat_with_history(group_chat, admin_user, member_user):
    """
    Group chat with five messages, oldest first: "m1" .. "m5".

    Returns (chat, messages).
    """
    authors = [admin_user, member_user, admin_user, member_user, admin_user]
    messages = [
        MessageFactory(chat=group_chat, sender=author, text=f"m{i}")
        for i, author in enumerate(authors, start=1)
    ]
    return group_chat, messages


# =============================================================================
# Service Fixtures
# =============================================================================


@pytest.fixture
def registry(monkeypatch):
    """
    Fresh ListenerRegistry installed as the chat app's registry.

    Code that looks the registry up through the app config (views,
    consumers) sees this instance for the duration of the test.
    """
    fresh = ListenerRegistry(buffer_size=50, overflow_policy="drop_oldest")
    monkeypatch.setattr(apps.get_app_config("chat"), "listener_registry", fresh)
    yield fresh
    fresh.close_all()


@pytest.fixture
def store():
    return DjangoChatStore()


@pytest.fixture
def dispatcher(store, registry):
    return MessageDispatcher(store=store, registry=registry)


@pytest.fixture
def chat_service(store, dispatcher):
    return ChatService(store=store, dispatcher=dispatcher)


@pytest.fixture
def assembly(store):
    return ChatAssemblyService(store=store)


# =============================================================================
# API Client Fixtures
# =============================================================================


@pytest.fixture
def authenticated_client_factory(db):
    """
    Factory fixture for creating authenticated API clients.

    Usage:
        def test_example(authenticated_client_factory, some_user):
            client = authenticated_client_factory(some_user)
            response = client.get("/api/v1/chat/chats/")
    """

    def _make_client(user):
        client = APIClient()
        refresh = RefreshToken.for_user(user)
        client.credentials(HTTP_AUTHORIZATION=f"Bearer {refresh.access_token}")
        return client

    return _make_client


@pytest.fixture
def admin_client(authenticated_client_factory, admin_user, registry):
    return authenticated_client_factory(admin_user)


@pytest.fixture
def member_client(authenticated_client_factory, member_user, registry):
    return authenticated_client_factory(member_user)


@pytest.fixture
def viewer_client(authenticated_client_factory, viewer_user, registry):
    return authenticated_client_factory(viewer_user)


@pytest.fixture
def outsider_client(authenticated_client_factory, outsider_user, registry):
    return authenticated_client_factory(outsider_user)
