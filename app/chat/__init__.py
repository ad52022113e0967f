"""
Chat application.

Chats (channel, dialog, group), role-based membership, message history and
live delivery over WebSockets.

Modules:
    models: Chat, ChatMember, Message
    stores: Django ORM implementation of the membership store
    registry: In-process listener registry and bounded listener buffers
    authorization: Role to capability checks
    services: MessageDispatcher, ChatService, ChatAssemblyService
    consumers: WebSocket endpoint for subscribing and posting
    views: REST endpoints
"""
