"""
Django admin configuration for chat models.

Provides admin interfaces for:
- Chat management with inline members
- Message browsing (read only; messages are immutable)
"""

from django.contrib import admin

from chat.models import Chat, ChatMember, Message


class ChatMemberInline(admin.TabularInline):
    """Inline display of members in chat admin."""

    model = ChatMember
    extra = 0
    readonly_fields = ["created_at"]
    raw_id_fields = ["user"]


@admin.register(Chat)
class ChatAdmin(admin.ModelAdmin):
    """Admin interface for Chat model."""

    list_display = ["id", "chat_type", "name", "created_at"]
    list_filter = ["chat_type", "created_at"]
    search_fields = ["name", "id"]
    readonly_fields = ["created_at", "updated_at"]
    inlines = [ChatMemberInline]
    ordering = ["-created_at"]


@admin.register(Message)
class MessageAdmin(admin.ModelAdmin):
    """Admin interface for Message model."""

    list_display = ["id", "chat", "sender", "kind", "created_at"]
    list_filter = ["kind", "created_at"]
    search_fields = ["text", "id"]
    raw_id_fields = ["chat", "sender"]
    ordering = ["-created_at"]

    def has_change_permission(self, request, obj=None):
        return False
