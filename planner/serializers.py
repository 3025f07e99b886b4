from rest_framework import serializers

from .api import STATUS_ACTIVE, STATUS_COMPLETED


class PlaceSerializer(serializers.Serializer):
    id = serializers.IntegerField()
    project_id = serializers.IntegerField()
    external_id = serializers.IntegerField()
    title = serializers.CharField(allow_null=True)
    artist_display = serializers.CharField(allow_null=True)
    place_of_origin = serializers.CharField(allow_null=True)
    image_id = serializers.CharField(allow_null=True)
    image_url = serializers.CharField(read_only=True)
    notes = serializers.CharField(allow_null=True)
    visited = serializers.BooleanField()
    created_at = serializers.CharField(allow_null=True)
    updated_at = serializers.CharField(allow_null=True)


class ProjectListItemSerializer(serializers.Serializer):
    id = serializers.IntegerField()
    name = serializers.CharField()
    description = serializers.CharField(allow_null=True)
    start_date = serializers.CharField(allow_null=True)
    status = serializers.CharField()
    place_count = serializers.IntegerField()
    created_at = serializers.CharField(allow_null=True)
    updated_at = serializers.CharField(allow_null=True)


class ProjectSerializer(serializers.Serializer):
    id = serializers.IntegerField()
    name = serializers.CharField()
    description = serializers.CharField(allow_null=True)
    start_date = serializers.CharField(allow_null=True)
    status = serializers.CharField()
    visited_count = serializers.IntegerField(read_only=True)
    created_at = serializers.CharField(allow_null=True)
    updated_at = serializers.CharField(allow_null=True)
    places = PlaceSerializer(many=True)


class PaginatedProjectsSerializer(serializers.Serializer):
    items = ProjectListItemSerializer(many=True)
    total = serializers.IntegerField()
    page = serializers.IntegerField()
    limit = serializers.IntegerField()
    pages = serializers.IntegerField()


class ArtworkResultSerializer(serializers.Serializer):
    id = serializers.IntegerField()
    title = serializers.CharField(allow_null=True)
    artist_display = serializers.CharField(allow_null=True)
    place_of_origin = serializers.CharField(allow_null=True)
    image_id = serializers.CharField(allow_null=True)
    thumbnail = serializers.CharField(allow_null=True)


class ArtworkSearchResponseSerializer(serializers.Serializer):
    results = ArtworkResultSerializer(many=True)
    total = serializers.IntegerField()
    page = serializers.IntegerField()


# ---------------------------------------------------------------------------
# Input validation
# ---------------------------------------------------------------------------

class ArtworkSearchQuerySerializer(serializers.Serializer):
    q = serializers.CharField(max_length=200)
    page = serializers.IntegerField(min_value=1, default=1)
    limit = serializers.IntegerField(min_value=1, max_value=100, default=10)


class ProjectListQuerySerializer(serializers.Serializer):
    page = serializers.IntegerField(min_value=1, default=1)
    limit = serializers.IntegerField(min_value=1, max_value=100, default=10)
    status = serializers.ChoiceField(
        choices=[STATUS_ACTIVE, STATUS_COMPLETED], required=False, allow_blank=True
    )


class PlaceUpdateSerializer(serializers.Serializer):
    """Only notes and visited are writable on a place."""
    notes = serializers.CharField(required=False, allow_blank=True, trim_whitespace=False)
    visited = serializers.BooleanField(required=False)

    def validate(self, attrs):
        if not attrs:
            raise serializers.ValidationError("Provide notes or visited.")
        return attrs
