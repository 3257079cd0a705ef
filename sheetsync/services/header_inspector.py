"""
Header row lookup for the mapping editor.
A failed lookup never blocks mapping: column options fall back to letters A-Z.
"""
import logging
import string
from typing import Optional

from sheetsync.models import ChannelKind
from sheetsync.services.sheet_channels import ChannelConfigStore
from sheetsync.services.sheets_api import SheetsApiError

logger = logging.getLogger(__name__)

FALLBACK_COLUMNS = list(string.ascii_uppercase)


class HeaderInspector:
    def __init__(self, api, account_id: str, store: ChannelConfigStore):
        self.api = api
        self.account_id = account_id
        self.store = store
        self.headers: dict[ChannelKind, list[str]] = {k: [] for k in ChannelKind}
        self.errors: dict[ChannelKind, Optional[str]] = {k: None for k in ChannelKind}

    async def fetch_headers(self, kind: ChannelKind) -> list[str]:
        """Fetch and remember the header row of the channel's selected sheet. Returns [] on failure."""
        kind = ChannelKind(kind)
        channel = self.store.get(kind)
        if not channel.is_configured:
            return []
        file_id = channel.file_id.strip()
        sheet_name = channel.sheet_name.strip()
        try:
            row = await self.api.get_header_row(self.account_id, file_id, sheet_name)
        except SheetsApiError as e:
            logger.warning("Error fetching headers account=%s %s/%s: %s", self.account_id, file_id, sheet_name, e)
            self.errors[kind] = str(e)
            return []

        # The channel may have moved to another file or sheet while we waited
        if channel.file_id.strip() != file_id or channel.sheet_name.strip() != sheet_name:
            return self.headers[kind]

        self.headers[kind] = [h for h in (str(c).strip() for c in row) if h]
        self.errors[kind] = None
        return self.headers[kind]

    def column_options(self, kind: ChannelKind) -> list[dict]:
        headers = self.headers[ChannelKind(kind)]
        if headers:
            return [{"value": h, "label": h} for h in headers]
        return [{"value": c, "label": c} for c in FALLBACK_COLUMNS]

    def uses_fallback(self, kind: ChannelKind) -> bool:
        return not self.headers[ChannelKind(kind)]

    def clear(self, kind: Optional[ChannelKind] = None) -> None:
        kinds = [ChannelKind(kind)] if kind is not None else list(ChannelKind)
        for k in kinds:
            self.headers[k] = []
            self.errors[k] = None
