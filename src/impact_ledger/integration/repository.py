import asyncio
import json
import os
import re
from abc import ABC, abstractmethod
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from impact_ledger.domain.values import normalize_settings
from impact_ledger.errors import PersistenceError, ValidationError
from impact_ledger.logger import get_logger
from impact_ledger.models import BatchSummary, CreditState, UserValueSettings

logger = get_logger(__name__)

_USER_ID_RE = re.compile(r"^[A-Za-z0-9_.@-]{1,128}$")

SETTINGS_FILE = "value_settings.json"
CREDIT_FILE = "credit_state.json"
BATCH_FILE = "transaction_batch.json"


class Repository(ABC):
    @abstractmethod
    async def load_value_settings(self, user_id: str) -> UserValueSettings | None:
        pass

    @abstractmethod
    async def save_value_settings(self, user_id: str, value_settings: UserValueSettings) -> None:
        pass

    @abstractmethod
    async def list_value_settings(self) -> dict[str, UserValueSettings]:
        """Stored value settings of every user, keyed by user id."""
        pass

    @abstractmethod
    async def load_credit_state(self, user_id: str) -> CreditState | None:
        pass

    @abstractmethod
    async def save_credit_state(self, state: CreditState) -> None:
        pass

    @abstractmethod
    async def load_transaction_batch(self, user_id: str) -> BatchSummary | None:
        pass

    @abstractmethod
    async def save_transaction_batch(self, user_id: str, batch: BatchSummary) -> None:
        pass


def validate_user_id(user_id: str) -> str:
    if not isinstance(user_id, str) or not _USER_ID_RE.match(user_id) or user_id in {".", ".."}:
        raise ValidationError(f"Invalid user id: {user_id!r}")
    return user_id


class JsonRepository(Repository):
    """
    One directory per user under ``<data_dir>/users/``, one JSON document per
    record. Reads and writes run in worker threads.
    """

    def __init__(self, data_dir: str = "."):
        self.root = os.path.join(data_dir, "users")

    def _path(self, user_id: str, filename: str) -> str:
        return os.path.join(self.root, validate_user_id(user_id), filename)

    def _read(self, path: str) -> Any:
        if not os.path.exists(path):
            return None
        try:
            with open(path, encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise PersistenceError(f"Could not read {path}: {e}") from e

    def _write(self, path: str, data: Any) -> None:
        tmp_path = f"{path}.tmp"
        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_path, path)
        except OSError as e:
            raise PersistenceError(f"Could not write {path}: {e}") from e

    async def _load(self, user_id: str, filename: str) -> Any:
        return await asyncio.to_thread(self._read, self._path(user_id, filename))

    async def _save(self, user_id: str, filename: str, data: Any) -> None:
        await asyncio.to_thread(self._write, self._path(user_id, filename), data)

    async def load_value_settings(self, user_id: str) -> UserValueSettings | None:
        raw = await self._load(user_id, SETTINGS_FILE)
        if raw is None:
            return None
        if not isinstance(raw, dict):
            raise PersistenceError(f"Value settings for {user_id} are not a JSON object")
        return normalize_settings(raw)

    async def save_value_settings(self, user_id: str, value_settings: UserValueSettings) -> None:
        await self._save(user_id, SETTINGS_FILE, value_settings.model_dump(mode="json"))
        logger.debug("[STORE] Saved value settings for %s.", user_id)

    def _read_all_settings(self) -> dict[str, UserValueSettings]:
        if not os.path.isdir(self.root):
            return {}
        found: dict[str, UserValueSettings] = {}
        for user_id in sorted(os.listdir(self.root)):
            if not _USER_ID_RE.match(user_id) or user_id in {".", ".."}:
                continue
            try:
                raw = self._read(os.path.join(self.root, user_id, SETTINGS_FILE))
            except PersistenceError as e:
                logger.warning("[STORE] Skipping value settings of %s: %s", user_id, e)
                continue
            if isinstance(raw, dict):
                found[user_id] = normalize_settings(raw)
        return found

    async def list_value_settings(self) -> dict[str, UserValueSettings]:
        return await asyncio.to_thread(self._read_all_settings)

    async def load_credit_state(self, user_id: str) -> CreditState | None:
        raw = await self._load(user_id, CREDIT_FILE)
        if raw is None:
            return None
        try:
            return CreditState.model_validate(raw)
        except PydanticValidationError as e:
            raise PersistenceError(f"Stored credit state for {user_id} is invalid: {e}") from e

    async def save_credit_state(self, state: CreditState) -> None:
        await self._save(state.user_id, CREDIT_FILE, state.model_dump(mode="json"))
        logger.debug("[STORE] Saved credit state for %s.", state.user_id)

    async def load_transaction_batch(self, user_id: str) -> BatchSummary | None:
        raw = await self._load(user_id, BATCH_FILE)
        if raw is None:
            return None
        try:
            return BatchSummary.model_validate(raw)
        except PydanticValidationError as e:
            raise PersistenceError(f"Stored transaction batch for {user_id} is invalid: {e}") from e

    async def save_transaction_batch(self, user_id: str, batch: BatchSummary) -> None:
        await self._save(user_id, BATCH_FILE, batch.model_dump(mode="json"))
        logger.debug("[STORE] Saved %d transactions for %s.", len(batch.transactions), user_id)
