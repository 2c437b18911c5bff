from django.db import migrations, models
import django.db.models.deletion
import uuid


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Location",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=150)),
                ("name_local", models.CharField(blank=True, max_length=150)),
                ("level", models.CharField(choices=[("DIVISION", "Division"), ("DISTRICT", "District"), ("CITY", "City"), ("ZONE", "Zone"), ("AREA", "Area")], default="AREA", max_length=20)),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("parent", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="children", to="location.location")),
            ],
            options={"ordering": ["name"]},
        ),
        migrations.AddIndex(
            model_name="location",
            index=models.Index(fields=["parent"], name="location_parent_idx"),
        ),
        migrations.AddIndex(
            model_name="location",
            index=models.Index(fields=["level"], name="location_level_idx"),
        ),
    ]
