import uuid
from django.db import models


class Location(models.Model):
    class Level(models.TextChoices):
        DIVISION = "DIVISION", "Division"
        DISTRICT = "DISTRICT", "District"
        CITY = "CITY", "City"
        ZONE = "ZONE", "Zone"
        AREA = "AREA", "Area"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=150)
    name_local = models.CharField(max_length=150, blank=True)
    level = models.CharField(max_length=20, choices=Level.choices, default=Level.AREA)
    parent = models.ForeignKey(
        "self",
        null=True,
        blank=True,
        related_name="children",
        on_delete=models.PROTECT,
    )
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]
        indexes = [
            models.Index(fields=["parent"], name="location_parent_idx"),
            models.Index(fields=["level"], name="location_level_idx"),
        ]

    def __str__(self):
        return f"{self.name} ({self.level})"

    def lineage(self):
        """Names from the root of the hierarchy down to this location."""
        names = []
        node = self
        seen = set()
        while node is not None and node.pk not in seen:
            seen.add(node.pk)
            names.append(node.name)
            node = node.parent
        return list(reversed(names))
