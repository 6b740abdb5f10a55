"""
Persisted CRUD over alarm records
"""

import json
import os
import tempfile
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError

from .logging_utils import get_logger
from .models import Alarm, AlarmValidationError

logger = get_logger(__name__)

ALARMS_KEY = "alarms"
_IMMUTABLE_FIELDS = ("id", "created_at", "createdAt")


class AlarmStore:
    """
    JSON-file backed alarm collection.

    Every mutation rewrites the full collection synchronously. A missing,
    unreadable or corrupt document reads as an empty list; write failures are
    logged and never raised.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def _load_records(self) -> List[Dict[str, Any]]:
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except FileNotFoundError:
            return []
        except (OSError, ValueError) as e:
            logger.warning(f"Alarm store at {self.path} is unreadable, treating as empty: {e}")
            return []

        if isinstance(data, dict):
            data = data.get(ALARMS_KEY, [])
        if not isinstance(data, list):
            logger.warning(f"Alarm store at {self.path} has unexpected shape, treating as empty")
            return []
        return [record for record in data if isinstance(record, dict)]

    def _load(self) -> List[Alarm]:
        alarms = []
        for record in self._load_records():
            try:
                alarms.append(Alarm.model_validate(record))
            except ValidationError as e:
                logger.warning(f"Skipping invalid alarm record {record.get('id', '?')}: {e.error_count()} error(s)")
        return alarms

    def _save(self, alarms: List[Alarm]) -> None:
        document = {
            ALARMS_KEY: [alarm.to_record() for alarm in alarms],
            "last_updated": str(time.time())
        }
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".alarms-", suffix=".tmp")
            try:
                with os.fdopen(fd, 'w', encoding='utf-8') as f:
                    json.dump(document, f, indent=2)
                os.replace(tmp_path, self.path)
            except BaseException:
                Path(tmp_path).unlink(missing_ok=True)
                raise
            logger.debug(f"Saved {len(alarms)} alarm(s) to {self.path}")
        except OSError as e:
            logger.error(f"Failed to save alarms to {self.path}: {e}")

    def list(self) -> List[Alarm]:
        """Return all alarms in stored order."""
        return self._load()

    def get(self, alarm_id: str) -> Optional[Alarm]:
        for alarm in self._load():
            if alarm.id == alarm_id:
                return alarm
        return None

    def create(self, **fields: Any) -> Alarm:
        """
        Create and persist a new alarm.

        Args:
            **fields: Alarm fields (``time`` is required); ``id`` and
                ``created_at`` are always assigned here

        Returns:
            The stored alarm

        Raises:
            AlarmValidationError: If the fields are invalid
        """
        fields = {k: v for k, v in fields.items() if k not in _IMMUTABLE_FIELDS}
        try:
            alarm = Alarm(**fields)
        except ValidationError as e:
            raise AlarmValidationError(str(e)) from e

        alarms = self._load()
        alarms.append(alarm)
        self._save(alarms)
        logger.info(f"Created alarm {alarm.id} at {alarm.time}", extra={"alarm_id": alarm.id})
        return alarm

    def update(self, alarm_id: str, **patch: Any) -> Optional[Alarm]:
        """
        Apply a partial update.

        Returns:
            The updated alarm, or None if no alarm has this id

        Raises:
            AlarmValidationError: If the patched alarm is invalid
        """
        alarms = self._load()
        for index, alarm in enumerate(alarms):
            if alarm.id != alarm_id:
                continue
            merged = alarm.model_dump()
            merged.update({k: v for k, v in patch.items() if k not in _IMMUTABLE_FIELDS})
            try:
                updated = Alarm.model_validate(merged)
            except ValidationError as e:
                raise AlarmValidationError(str(e)) from e
            alarms[index] = updated
            self._save(alarms)
            return updated

        logger.debug(f"Update ignored, alarm {alarm_id} not found")
        return None

    def delete(self, alarm_id: str) -> bool:
        alarms = self._load()
        remaining = [alarm for alarm in alarms if alarm.id != alarm_id]
        if len(remaining) == len(alarms):
            return False
        self._save(remaining)
        logger.info(f"Deleted alarm {alarm_id}", extra={"alarm_id": alarm_id})
        return True

    def set_enabled(self, alarm_id: str, enabled: bool) -> Optional[Alarm]:
        return self.update(alarm_id, enabled=bool(enabled))

    def toggle(self, alarm_id: str) -> Optional[Alarm]:
        """Flip the enabled flag; returns None if not found."""
        alarm = self.get(alarm_id)
        if alarm is None:
            return None
        return self.set_enabled(alarm_id, not alarm.enabled)
