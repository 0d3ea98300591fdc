from django.contrib.auth.models import AbstractUser
from django.db import models


class UserRole(models.TextChoices):
    ADMIN = "ADMIN", "Admin"
    PURCHASING = "PURCHASING", "Purchasing"
    WAREHOUSE = "WAREHOUSE", "Warehouse"
    ACCOUNTANT = "ACCOUNTANT", "Accountant"


class User(AbstractUser):
    role = models.CharField(max_length=20, choices=UserRole.choices, default=UserRole.PURCHASING)
