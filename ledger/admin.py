from django.contrib import admin, messages
from django_object_actions import DjangoObjectActions, action

from ledger.models import JournalEntry, JournalLine
from ledger.services.posting import reverse


class JournalLineInline(admin.TabularInline):
    model = JournalLine
    extra = 0
    can_delete = False
    fields = ("account", "currency", "fx_rate", "debit_tx", "credit_tx", "debit_base", "credit_base")
    readonly_fields = fields

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(JournalEntry)
class JournalEntryAdmin(DjangoObjectActions, admin.ModelAdmin):
    """Read-only: entries are created by the posting services only."""
    inlines = [JournalLineInline]
    list_display = ("id", "entity", "posting_date", "document", "narration", "reversal_of")
    list_filter = ("entity", "posting_date")
    search_fields = ("narration", "reference", "idempotency_key", "document__number")

    change_actions = ("reverse_action",)

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

    @action(label="Reverse", description="Post the mirror entry")
    def reverse_action(self, request, obj):
        try:
            reversal = reverse(obj.entity.code, obj.pk, reason=f"reversed by {request.user}")
            self.message_user(request, f"Reversed by entry {reversal.pk}.", level=messages.SUCCESS)
        except ValueError as e:
            self.message_user(request, f"Could not reverse: {e}", level=messages.ERROR)
