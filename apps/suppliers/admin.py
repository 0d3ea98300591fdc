from django.contrib import admin

from apps.suppliers.models import Supplier


@admin.register(Supplier)
class SupplierAdmin(admin.ModelAdmin):
    list_display = ("code", "name", "contact_person", "phone", "account", "is_active")
    list_filter = ("is_active",)
    search_fields = ("code", "name", "contact_person", "email")
    readonly_fields = ("account",)
