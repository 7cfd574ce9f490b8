import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import caffeinekit.settings as default_settings

log = logging.getLogger(__name__)

_TRUE_STRINGS = ('true', '1', 't', 'yes', 'y', 'on')


def _coerce(current: Any, raw: Any) -> Any:
    """
    Converts `raw` to the type of the setting's `current` value.

    :raises ValueError: If `raw` cannot be converted.
    """
    if isinstance(current, bool):
        return raw if isinstance(raw, bool) else str(raw).strip().lower() in _TRUE_STRINGS
    if isinstance(current, Path):
        return Path(raw)
    if current is None or isinstance(raw, type(current)):
        return raw
    try:
        return type(current)(raw)
    except TypeError as e:
        raise ValueError(str(e)) from e


class MergedSettings:
    """
    The settings CaffeineKit runs with.

    Values come from `settings.py` (which already honors `.env` through
    `python-dotenv`). Keys listed in `MODIFIABLE_SETTINGS` can be changed at
    runtime with `update_setting` and are persisted to, and reloaded from, a
    JSON overrides file.
    """

    def __init__(self, overrides_path: Optional[Path] = None) -> None:
        self.OVERRIDES_JSON_PATH: Path = overrides_path or default_settings.OVERRIDES_JSON_PATH
        for key in dir(default_settings):
            if key.isupper() and key != "OVERRIDES_JSON_PATH":
                setattr(self, key, getattr(default_settings, key))
        self._apply_overrides(self._read_overrides())

    def _read_overrides(self) -> Dict[str, Any]:
        if not self.OVERRIDES_JSON_PATH.exists():
            return {}
        try:
            overrides = json.loads(self.OVERRIDES_JSON_PATH.read_text())
        except (json.JSONDecodeError, OSError) as e:
            log.error(f"Ignoring unreadable overrides file '{self.OVERRIDES_JSON_PATH}': {e}")
            return {}
        if not isinstance(overrides, dict):
            log.error(f"Ignoring overrides file '{self.OVERRIDES_JSON_PATH}': expected a JSON object.")
            return {}
        return overrides

    def _apply_overrides(self, overrides: Dict[str, Any]) -> None:
        for key, raw in overrides.items():
            if key not in self.MODIFIABLE_SETTINGS:
                log.warning(f"Override '{key}' is not a modifiable setting. Ignoring.")
                continue
            try:
                setattr(self, key, _coerce(getattr(self, key), raw))
            except ValueError as e:
                log.warning(f"Override '{key}' has an invalid value {raw!r} ({e}). Keeping the default.")
                continue
            log.debug(f"Setting {key} overridden with {raw!r}.")

    def as_dict(self) -> Dict[str, Any]:
        """Returns the modifiable settings and their current values."""
        return {key: getattr(self, key) for key in sorted(self.MODIFIABLE_SETTINGS)}

    def update_setting(self, key: str, value: Any) -> Tuple[bool, str]:
        """
        Changes a modifiable setting and persists every modifiable setting.

        :param key: The setting name.
        :param value: The raw new value, usually a string from the command line.
        :return: A (success, message) tuple.
        """
        if key not in self.MODIFIABLE_SETTINGS:
            message = f"Setting '{key}' is not modifiable."
            log.warning(message)
            return False, message

        try:
            new_value = _coerce(getattr(self, key), value)
        except ValueError as e:
            message = f"Invalid value '{value}' for '{key}': {e}"
            log.error(message)
            return False, message

        setattr(self, key, new_value)
        self.save_overrides()
        message = f"Setting '{key}' updated to '{new_value}'."
        log.info(message)
        return True, message

    def save_overrides(self) -> None:
        """Writes the current modifiable settings to the overrides file."""
        values = {key: str(value) if isinstance(value, Path) else value for key, value in self.as_dict().items()}
        try:
            self.OVERRIDES_JSON_PATH.parent.mkdir(parents=True, exist_ok=True)
            self.OVERRIDES_JSON_PATH.write_text(json.dumps(values, indent=4))
        except OSError as e:
            log.error(f"Could not write overrides file '{self.OVERRIDES_JSON_PATH}': {e}")
            return
        log.info(f"Configuration overrides saved to {self.OVERRIDES_JSON_PATH}")


# Create a singleton instance to be imported by other modules
effective_settings = MergedSettings()
