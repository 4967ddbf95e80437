from django.contrib.auth.models import AbstractBaseUser, PermissionsMixin
from django.db import models
from django.utils import timezone
from .managers import UserManager


class User(AbstractBaseUser, PermissionsMixin):
    """
    Custom User model where phone number is the unique identifier.
    Platform admins are staff users; customers and sellers are roles.
    """
    phone = models.CharField(max_length=15, unique=True, db_index=True)
    email = models.EmailField(blank=True, null=True)

    first_name = models.CharField(max_length=50, blank=True)
    last_name = models.CharField(max_length=50, blank=True)

    is_active = models.BooleanField(default=True)
    is_staff = models.BooleanField(default=False)

    created_at = models.DateTimeField(default=timezone.now)

    objects = UserManager()

    USERNAME_FIELD = "phone"
    REQUIRED_FIELDS = []

    def __str__(self):
        return self.phone

    def has_role(self, role):
        return self.roles.filter(role=role).exists()


class UserRole(models.Model):
    """
    Role-Based Access Control (RBAC).
    A user can have multiple roles (e.g., Customer AND Seller).
    """
    ROLE_CHOICES = (
        ("customer", "Customer"),
        ("seller", "Seller"),
    )

    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name="roles")
    role = models.CharField(max_length=20, choices=ROLE_CHOICES)

    class Meta:
        unique_together = ("user", "role")

    def __str__(self):
        return f"{self.user.phone} - {self.role}"
