from rest_framework import serializers

from .models import User


class UserBasicSerializer(serializers.ModelSerializer):
    """
    Basic party representation used inside ride responses.
    """
    class Meta:
        model = User
        fields = ["id", "username", "phone_number"]
