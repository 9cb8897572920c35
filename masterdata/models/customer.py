from django.db import models


class Customer(models.Model):
    entity = models.ForeignKey("core.Entity", on_delete=models.CASCADE, related_name="customers")

    code = models.CharField(max_length=50)
    name = models.CharField(max_length=255)
    email = models.EmailField(blank=True, default="")

    is_active = models.BooleanField(default=True)

    class Meta:
        unique_together = ("entity", "code")
        ordering = ["code"]

    def __str__(self):
        return f"{self.code} {self.name}"
