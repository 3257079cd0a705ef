"""
Channel configuration store.

Holds the in-memory configuration of the two fixed channels (new / abandoned orders)
for one linked spreadsheet account, populated from the remote saved configs and
serialized back into the wire "content" shape for create/update calls.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from sheetsync.config import settings
from sheetsync.models import ChannelKind

logger = logging.getLogger(__name__)

# Row 1 is the header row; data starts at row 2
FIRST_DATA_ROW = 2


def default_sheet_name(kind: ChannelKind) -> str:
    if kind == ChannelKind.NEW:
        return settings.DEFAULT_NEW_SHEET_NAME
    return settings.DEFAULT_ABANDONED_SHEET_NAME


@dataclass
class Channel:
    kind: ChannelKind
    file_id: str = ""
    sheet_name: str = ""
    cursor: int = FIRST_DATA_ROW
    mapping: dict[str, str] = field(default_factory=dict)
    auto_sync_enabled: bool = False
    persisted_id: Optional[str] = None

    @classmethod
    def defaults(cls, kind: ChannelKind) -> "Channel":
        return cls(kind=kind, sheet_name=default_sheet_name(kind))

    @property
    def is_configured(self) -> bool:
        return bool(self.file_id.strip() and self.sheet_name.strip())

    @property
    def last_row_synced(self) -> int:
        return self.cursor - 1

    def to_content(self, auto_sync: Optional[bool] = None) -> dict:
        """Wire shape for createChannelConfig / updateChannelConfig."""
        content = {
            "idFile": self.file_id.strip(),
            "nameSheet": self.sheet_name.strip(),
            "typeOrder": self.kind.value,
            "lastRowSynced": self.last_row_synced,
            "configWithOrderCollection": [
                {"field": f, "column": c} for f, c in self.mapping.items()
            ],
        }
        if auto_sync is not None:
            content["autoSync"] = auto_sync
        return content

    def to_dict(self) -> dict:
        return {
            "type": self.kind.value,
            "fileId": self.file_id,
            "sheetName": self.sheet_name,
            "cursor": self.cursor,
            "lastRowSynced": self.last_row_synced,
            "mapping": dict(self.mapping),
            "autoSync": self.auto_sync_enabled,
            "persistedId": self.persisted_id,
            "saved": self.persisted_id is not None,
        }


@dataclass
class StagedBatch:
    """Rows fetched from start_row onward, waiting for review and commit."""
    header: list[Any]
    rows: list[list[Any]]
    start_row: int

    def __len__(self) -> int:
        return len(self.rows)

    def to_dict(self) -> dict:
        return {
            "header": list(self.header),
            "rows": [list(r) for r in self.rows],
            "startRow": self.start_row,
            "count": len(self.rows),
        }


def channel_from_saved(kind: ChannelKind, saved: dict) -> Channel:
    """Build a Channel from one saved config (allGoogleSheets.sheets[])."""
    last_row = saved.get("lastRowSynced")
    try:
        cursor = int(last_row) + 1 if last_row else FIRST_DATA_ROW
    except (TypeError, ValueError):
        cursor = FIRST_DATA_ROW
    mapping = {}
    for entry in saved.get("configWithOrderCollection") or []:
        if entry and entry.get("field") and entry.get("column"):
            mapping[entry["field"]] = entry["column"]
    return Channel(
        kind=kind,
        file_id=saved.get("idFile") or "",
        sheet_name=saved.get("nameSheet") or "",
        cursor=max(cursor, FIRST_DATA_ROW),
        mapping=mapping,
        auto_sync_enabled=bool(saved.get("autoSync")),
        persisted_id=str(saved["id"]) if saved.get("id") else None,
    )


class ChannelConfigStore:
    """Per-account map of ChannelKind -> Channel."""

    def __init__(self):
        self.channels: dict[ChannelKind, Channel] = {}
        self.reset()

    def get(self, kind: ChannelKind) -> Channel:
        return self.channels[ChannelKind(kind)]

    def reset(self, kind: Optional[ChannelKind] = None) -> None:
        kinds = [ChannelKind(kind)] if kind is not None else list(ChannelKind)
        for k in kinds:
            self.channels[k] = Channel.defaults(k)

    def load(self, saved_configs: list[dict]) -> list[ChannelKind]:
        """
        Replace all channels with the saved configs. Channels without a saved config
        fall back to defaults. Returns the kinds that were loaded from a saved config.
        """
        self.reset()
        loaded = []
        for saved in saved_configs or []:
            try:
                kind = ChannelKind(saved.get("typeOrder"))
            except ValueError:
                logger.debug("Ignoring saved sheet config with typeOrder=%r", saved.get("typeOrder"))
                continue
            self.channels[kind] = channel_from_saved(kind, saved)
            loaded.append(kind)
        return loaded

    def set_file_id(self, kind: ChannelKind, file_id: str) -> Channel:
        channel = self.get(kind)
        channel.file_id = file_id or ""
        return channel

    def set_sheet_name(self, kind: ChannelKind, sheet_name: str) -> Channel:
        channel = self.get(kind)
        channel.sheet_name = sheet_name or ""
        return channel

    def advance_cursor(self, kind: ChannelKind, rows: int) -> int:
        """Move the cursor forward by rows. Never moves backwards."""
        if rows < 0:
            raise ValueError("cursor cannot move backwards")
        channel = self.get(kind)
        channel.cursor += rows
        return channel.cursor

    def to_dict(self) -> dict:
        return {k.value: c.to_dict() for k, c in self.channels.items()}
