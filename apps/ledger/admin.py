from django.contrib import admin

from apps.ledger.models import Account, LedgerEntry, LedgerTransaction


class LedgerEntryInline(admin.TabularInline):
    model = LedgerEntry
    extra = 0
    readonly_fields = ("account", "debit", "credit", "narration")


@admin.register(Account)
class AccountAdmin(admin.ModelAdmin):
    list_display = ("code", "name", "account_type", "account_number", "is_cash", "is_bank", "is_active")
    list_filter = ("account_type", "is_cash", "is_bank")
    search_fields = ("code", "name", "account_number")


@admin.register(LedgerTransaction)
class LedgerTransactionAdmin(admin.ModelAdmin):
    list_display = ("id", "reference_type", "reference_id", "created_at")
    list_filter = ("reference_type",)
    search_fields = ("reference_id",)
    inlines = [LedgerEntryInline]
