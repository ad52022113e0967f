"""
Serializers for the User model.

Only public profile fields are exposed; other chat members never see a
user's email address.
"""

from __future__ import annotations

from django.contrib.auth import get_user_model
from rest_framework import serializers

User = get_user_model()


class UserSerializer(serializers.ModelSerializer):
    """
    Serializer for User model (read operations).

    Used when embedding users in chat member lists.
    """

    display_name = serializers.CharField(read_only=True)

    class Meta:
        model = User
        fields = [
            "id",
            "name",
            "display_name",
        ]
        read_only_fields = fields
