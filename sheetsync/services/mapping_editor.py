"""
Field-to-column mapping and channel config save.

Save is gated locally (no remote call) on, in order: file id present, file not
known to be invalid, sheet selected, every required field mapped.
"""
import logging
from typing import Optional

from sheetsync.models import ChannelKind
from sheetsync.services.sheet_channels import ChannelConfigStore
from sheetsync.services.sheet_errors import (
    ConfigIncompleteError,
    MappingIncompleteError,
    RemoteOperationError,
    SheetSyncError,
)
from sheetsync.services.sheet_validator import SpreadsheetValidator
from sheetsync.services.sheets_api import SheetsApiError

logger = logging.getLogger(__name__)

# System fields a spreadsheet column can be mapped to
ORDER_FIELDS = [
    {"id": "fullName", "label": "Customer name", "required": True},
    {"id": "phone", "label": "Phone number", "required": True},
    {"id": "address", "label": "Full address", "required": False},
    {"id": "state", "label": "State", "required": False},
    {"id": "city", "label": "City", "required": False},
    {"id": "products.name", "label": "Product name", "required": True},
    {"id": "products.sku", "label": "Product SKU", "required": True},
    {"id": "products.quantity", "label": "Quantity", "required": False},
    {"id": "products.price", "label": "Price", "required": False},
    {"id": "totalPrice", "label": "Total price", "required": False},
    {"id": "note", "label": "Note", "required": False},
]

FIELD_IDS = {f["id"] for f in ORDER_FIELDS}
REQUIRED_FIELDS = [f["id"] for f in ORDER_FIELDS if f["required"]]


def missing_required_fields(mapping: dict[str, str]) -> list[dict]:
    return [f for f in ORDER_FIELDS if f["required"] and not (mapping.get(f["id"]) or "").strip()]


class MappingEditor:
    def __init__(self, api, account_id: str, store: ChannelConfigStore, validator: SpreadsheetValidator):
        self.api = api
        self.account_id = account_id
        self.store = store
        self.validator = validator

    def set_mapping(self, kind: ChannelKind, field: str, column: Optional[str]) -> dict:
        """Map field to column; an empty column clears the entry. Never touches the cursor."""
        if field not in FIELD_IDS:
            raise ValueError(f"Unknown field: {field}")
        channel = self.store.get(kind)
        column = (column or "").strip()
        if column:
            channel.mapping[field] = column
        else:
            channel.mapping.pop(field, None)
        return dict(channel.mapping)

    def check(self, kind: ChannelKind) -> None:
        """Raise the first unmet save precondition."""
        channel = self.store.get(kind)
        if not channel.file_id.strip():
            raise ConfigIncompleteError("Enter the spreadsheet id.")
        if self.validator.state(kind).is_invalid:
            raise ConfigIncompleteError("Fix the spreadsheet id before saving.")
        if not channel.sheet_name.strip():
            raise ConfigIncompleteError("Select a sheet.")
        missing = missing_required_fields(channel.mapping)
        if missing:
            raise MappingIncompleteError([f["label"] for f in missing])

    async def save(self, kind: ChannelKind) -> dict:
        """Create or update the remote config for the channel. Returns a result dict."""
        kind = ChannelKind(kind)
        try:
            self.check(kind)
        except SheetSyncError as e:
            return e.to_result()

        channel = self.store.get(kind)
        content = channel.to_content()
        try:
            if channel.persisted_id:
                await self.api.update_channel_config(self.account_id, channel.persisted_id, content)
                persisted_id = channel.persisted_id
            else:
                created = await self.api.create_channel_config(self.account_id, content)
                persisted_id = str(created["id"])
        except SheetsApiError as e:
            logger.warning("Saving %s sheet config failed account=%s: %s", kind.value, self.account_id, e)
            return RemoteOperationError(f"Saving failed: {e}").to_result()

        channel.file_id = content["idFile"]
        channel.sheet_name = content["nameSheet"]
        channel.persisted_id = persisted_id
        logger.info("Saved %s sheet config %s for account %s", kind.value, persisted_id, self.account_id)
        return {"success": True, "persistedId": persisted_id, "channel": channel.to_dict()}
