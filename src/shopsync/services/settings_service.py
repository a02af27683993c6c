from __future__ import annotations

from dataclasses import replace

from shopsync.domain.errors import ValidationError
from shopsync.domain.models import ShopSettings


class SettingsService:
    def __init__(self, repo):
        self.repo = repo

    def get(self) -> ShopSettings:
        return self.repo.get_settings()

    def save(self, **changes) -> ShopSettings:
        current = self.repo.get_settings()
        try:
            updated = replace(current, **changes)
        except TypeError as e:
            raise ValidationError(str(e)) from e
        if not (updated.name or "").strip():
            raise ValidationError("Shop name is required.")
        if int(updated.low_stock_threshold) < 0:
            raise ValidationError("Low stock threshold must be >= 0.")
        if not (updated.currency or "").strip():
            raise ValidationError("Currency is required.")
        updated = replace(updated, name=updated.name.strip(), currency=updated.currency.strip().upper())
        self.repo.save_settings(updated)
        return updated
