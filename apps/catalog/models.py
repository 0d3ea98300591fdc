from django.db import models


def normalize_sku(value: str) -> str:
    return (value or "").strip().upper()


class Product(models.Model):
    sku = models.CharField(max_length=64, unique=True, db_index=True)
    name = models.CharField(max_length=255, db_index=True)
    unit = models.CharField(max_length=20, default="pcs")
    is_active = models.BooleanField(default=True, db_index=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]

    def save(self, *args, **kwargs):
        self.sku = normalize_sku(self.sku)
        super().save(*args, **kwargs)

    def __str__(self):
        return f"{self.sku} - {self.name}"
