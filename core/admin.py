from django.contrib import admin, messages
from django_object_actions import DjangoObjectActions, action
from mptt.admin import MPTTModelAdmin

from core.models import Account, AccountRule, Document, DocumentSequence, DocumentType, Entity
from core.services.numbering import cancel_document, post_document


@admin.register(Entity)
class EntityAdmin(admin.ModelAdmin):
    list_display = ("code", "name", "base_currency", "is_active")
    list_filter = ("base_currency", "is_active")
    search_fields = ("code", "name")


@admin.register(Account)
class AccountAdmin(MPTTModelAdmin):
    list_display = ("code", "name", "entity", "account_type", "is_postable")
    list_filter = ("entity", "account_type", "is_postable")
    search_fields = ("code", "name")


@admin.register(AccountRule)
class AccountRuleAdmin(admin.ModelAdmin):
    list_display = ("entity", "rule_type", "qualifier_key", "qualifier_value", "account_code",
                    "priority", "effective_from", "effective_to")
    list_filter = ("entity", "rule_type")
    search_fields = ("account_code",)


@admin.register(DocumentType)
class DocumentTypeAdmin(admin.ModelAdmin):
    list_display = ("code", "name", "numbering_strategy", "resets_every_fy", "is_numbered")


@admin.register(Document)
class DocumentAdmin(DjangoObjectActions, admin.ModelAdmin):
    list_display = ("number", "document_type", "entity", "status", "financial_year", "branch", "posted_at")
    list_filter = ("entity", "document_type", "status")
    search_fields = ("number",)
    readonly_fields = ("status", "number", "posted_at", "cancelled_at")

    change_actions = ("post_action", "cancel_action")

    def get_change_actions(self, request, object_id, form_url):
        obj = self.get_object(request, object_id)
        if not obj:
            return ()
        if obj.status == Document.Status.DRAFT:
            return ("post_action", "cancel_action")
        if obj.status == Document.Status.POSTED:
            return ("cancel_action",)
        return ()

    @action(label="Post", description="Assign the next number and post")
    def post_action(self, request, obj):
        try:
            doc = post_document(obj.pk)
            self.message_user(request, f"Posted as {doc.number}.", level=messages.SUCCESS)
        except ValueError as e:
            self.message_user(request, f"Could not post: {e}", level=messages.ERROR)

    @action(label="Cancel", description="Cancel the document; its number is not reused")
    def cancel_action(self, request, obj):
        try:
            cancel_document(obj.pk)
            self.message_user(request, "Cancelled.", level=messages.SUCCESS)
        except ValueError as e:
            self.message_user(request, f"Could not cancel: {e}", level=messages.ERROR)


@admin.register(DocumentSequence)
class DocumentSequenceAdmin(admin.ModelAdmin):
    list_display = ("entity", "document_type", "financial_year", "branch", "last_number")
    list_filter = ("entity", "document_type")

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False
