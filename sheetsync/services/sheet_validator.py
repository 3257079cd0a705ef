"""
Spreadsheet id validation, debounced per channel.

Every edit to a channel's file id bumps that channel's request token and restarts
its debounce timer; only the last edit in a burst reaches the remote API, and a
response is applied only while its token is still the current one.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from sheetsync.config import settings
from sheetsync.models import ChannelKind, ValidationStatus
from sheetsync.services.sheet_errors import ValidationError
from sheetsync.services.sheets_api import SheetsApiError

logger = logging.getLogger(__name__)

UNREACHABLE_MESSAGE = "Spreadsheet not found. Check the file id and its sharing permissions."
NO_SHEETS_MESSAGE = "No sheets found in this spreadsheet."


@dataclass
class ValidationState:
    status: ValidationStatus = ValidationStatus.IDLE
    sheets: list[dict] = field(default_factory=list)
    reason: Optional[str] = None
    file_id: str = ""

    @classmethod
    def idle(cls) -> "ValidationState":
        return cls()

    @property
    def sheet_names(self) -> list[str]:
        return [s["name"] for s in self.sheets]

    @property
    def is_valid(self) -> bool:
        return self.status == ValidationStatus.VALID

    @property
    def is_invalid(self) -> bool:
        return self.status == ValidationStatus.INVALID

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "sheets": self.sheet_names,
            "reason": self.reason,
            "fileId": self.file_id,
        }


class SpreadsheetValidator:
    def __init__(
        self,
        api,
        account_id: str,
        debounce_seconds: Optional[float] = None,
        on_valid: Optional[Callable[[ChannelKind], Awaitable[None]]] = None,
    ):
        self.api = api
        self.account_id = account_id
        self.debounce_seconds = settings.VALIDATION_DEBOUNCE_SECONDS if debounce_seconds is None else debounce_seconds
        self.on_valid = on_valid
        self.states: dict[ChannelKind, ValidationState] = {k: ValidationState.idle() for k in ChannelKind}
        self._timers: dict[ChannelKind, Optional[asyncio.Task]] = {k: None for k in ChannelKind}
        self._tokens: dict[ChannelKind, int] = {k: 0 for k in ChannelKind}

    def state(self, kind: ChannelKind) -> ValidationState:
        return self.states[ChannelKind(kind)]

    def _supersede(self, kind: ChannelKind) -> int:
        self._tokens[kind] += 1
        timer = self._timers[kind]
        if timer is not None and not timer.done():
            timer.cancel()
        self._timers[kind] = None
        return self._tokens[kind]

    def file_id_changed(self, kind: ChannelKind, file_id: str) -> ValidationState:
        """
        Called on every edit of the file id. Empty ids reset to idle immediately;
        anything else is validated once the debounce window passes without another edit.
        """
        kind = ChannelKind(kind)
        file_id = (file_id or "").strip()
        token = self._supersede(kind)
        if not file_id:
            self.states[kind] = ValidationState.idle()
            return self.states[kind]
        timer = asyncio.ensure_future(self._debounced(kind, file_id, token))
        timer.add_done_callback(self._log_timer_crash)
        self._timers[kind] = timer
        return self.states[kind]

    def _log_timer_crash(self, timer: asyncio.Task) -> None:
        if timer.cancelled():
            return
        exc = timer.exception()
        if exc is not None:
            logger.error(
                "Debounced spreadsheet validation crashed account=%s: %s",
                self.account_id, exc, exc_info=exc,
            )

    async def _debounced(self, kind: ChannelKind, file_id: str, token: int) -> None:
        await asyncio.sleep(self.debounce_seconds)
        await self._run(kind, file_id, token)

    async def validate_now(self, kind: ChannelKind, file_id: str) -> ValidationState:
        """Validate without waiting for the debounce window (e.g. a freshly created file)."""
        kind = ChannelKind(kind)
        file_id = (file_id or "").strip()
        token = self._supersede(kind)
        if not file_id:
            self.states[kind] = ValidationState.idle()
            return self.states[kind]
        return await self._run(kind, file_id, token)

    async def _run(self, kind: ChannelKind, file_id: str, token: int) -> ValidationState:
        self.states[kind] = ValidationState(status=ValidationStatus.VALIDATING, file_id=file_id)
        try:
            sheets = await self.api.list_sheets(self.account_id, file_id)
            if not sheets:
                raise ValidationError(NO_SHEETS_MESSAGE)
            result = ValidationState(status=ValidationStatus.VALID, sheets=list(sheets), file_id=file_id)
        except ValidationError as e:
            result = ValidationState(status=ValidationStatus.INVALID, reason=e.message, file_id=file_id)
        except SheetsApiError as e:
            logger.warning("Spreadsheet validation failed account=%s file=%s: %s", self.account_id, file_id, e)
            result = ValidationState(status=ValidationStatus.INVALID, reason=UNREACHABLE_MESSAGE, file_id=file_id)

        if token != self._tokens[kind]:
            logger.debug("Discarding stale validation for %s file=%s", kind.value, file_id)
            return self.states[kind]

        self.states[kind] = result
        if result.is_valid and self.on_valid is not None:
            await self.on_valid(kind)
        return result

    async def settle(self, kind: ChannelKind) -> ValidationState:
        """Wait for a pending debounced validation, if any, and return the resulting state."""
        kind = ChannelKind(kind)
        timer = self._timers[kind]
        if timer is not None:
            await asyncio.wait({timer})
        return self.states[kind]

    def reset(self, kind: Optional[ChannelKind] = None) -> None:
        kinds = [ChannelKind(kind)] if kind is not None else list(ChannelKind)
        for k in kinds:
            self._supersede(k)
            self.states[k] = ValidationState.idle()

    def to_dict(self) -> dict:
        return {k.value: s.to_dict() for k, s in self.states.items()}
