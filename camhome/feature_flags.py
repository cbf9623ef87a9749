"""Feature flag registry for camhome.

Flags are read from ``CAMHOME_<FLAG>`` environment variables at startup;
persisted application settings may override them per request (see
``runtime_config.merge_config_with_persisted_settings``).
"""

import logging
import os
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple


logger = logging.getLogger(__name__)

ENV_PREFIX = "CAMHOME_"

_BOOL_WORDS = {
    **dict.fromkeys(("true", "1", "t", "yes", "on"), True),
    **dict.fromkeys(("false", "0", "f", "no", "off"), False),
}


class FeatureFlagCategory(Enum):
    INTEGRATION_COMPATIBILITY = "Integration Compatibility"
    DISCOVERY = "Discovery"


@dataclass
class FeatureFlag:
    """A boolean toggle and its metadata; ``enabled`` is filled in by ``load``."""

    name: str
    default: bool
    category: FeatureFlagCategory
    description: str
    enabled: bool = False


FLAG_DEFINITIONS: Tuple[FeatureFlag, ...] = (
    FeatureFlag(
        name="CORS_SUPPORT",
        default=False,
        category=FeatureFlagCategory.INTEGRATION_COMPATIBILITY,
        description="Send CORS headers so a dashboard on another origin can call the API.",
    ),
    FeatureFlag(
        name="PORT_VENDOR_HEURISTICS",
        default=True,
        category=FeatureFlagCategory.DISCOVERY,
        description=(
            "Guess a manufacturer from well-known camera ports when the "
            "hardware address gives no match."
        ),
    ),
)


class FeatureFlags:
    """Holds the known flags and their current states.

    Args:
        environ: Mapping read by ``load``; defaults to ``os.environ``.
        definitions: Flags to register; each is copied so instances never
            share state.
    """

    def __init__(
        self,
        environ: Optional[Mapping[str, str]] = None,
        definitions: Tuple[FeatureFlag, ...] = FLAG_DEFINITIONS,
    ) -> None:
        self._environ = environ
        self._flags: Dict[str, FeatureFlag] = {}
        self._loaded = False
        for definition in definitions:
            self.register(replace(definition))

    def register(self, flag: FeatureFlag) -> None:
        """Add a flag, starting at its default state.

        Raises:
            ValueError: If the name is empty or already registered.
        """
        if not flag.name:
            message = "Feature flag name cannot be empty"
            raise ValueError(message)
        if flag.name in self._flags:
            message = f"Feature flag '{flag.name}' already registered"
            raise ValueError(message)
        flag.enabled = flag.default
        self._flags[flag.name] = flag

    def load(self, force: bool = False) -> None:
        """Read every flag from its ``CAMHOME_<FLAG>`` variable.

        A second call is a no-op unless ``force`` is set.
        """
        if self._loaded and not force:
            logger.debug("Feature flags already loaded; pass force=True to re-read")
            return

        environ = os.environ if self._environ is None else self._environ
        for flag in self._flags.values():
            raw = environ.get(f"{ENV_PREFIX}{flag.name}")
            flag.enabled = flag.default if raw is None else self.parse_bool(raw, flag.name)

        self._loaded = True
        overridden = [name for name, flag in sorted(self._flags.items()) if flag.enabled != flag.default]
        logger.info(
            "Feature flags loaded: %s (non-default: %s)",
            ", ".join(f"{name}={state}" for name, state in sorted(self.get_all_flags().items())),
            ", ".join(overridden) or "none",
        )

    def parse_bool(self, value: Any, flag_name: str) -> bool:
        """Interpret an env string (or a bool from JSON) for ``flag_name``.

        Unrecognised words log a warning and yield the flag's default.
        """
        if isinstance(value, bool):
            return value
        parsed = _BOOL_WORDS.get(str(value).strip().lower())
        if parsed is None:
            default = self._flags[flag_name].default
            logger.warning(
                "Ignoring invalid value %r for feature flag %s (expected true/false, on/off, 1/0); using %s",
                value,
                flag_name,
                default,
            )
            return default
        return parsed

    def is_enabled(self, flag_name: str) -> bool:
        """
        Raises:
            KeyError: If the flag is not registered.
        """
        try:
            return self._flags[flag_name].enabled
        except KeyError:
            message = f"Unknown feature flag: {flag_name}"
            raise KeyError(message) from None

    def names(self) -> List[str]:
        return sorted(self._flags)

    def get_all_flags(self) -> Dict[str, bool]:
        return {name: flag.enabled for name, flag in self._flags.items()}

    def effective_flags(
        self,
        overrides: Optional[Mapping[str, Any]] = None,
        base: Optional[Mapping[str, bool]] = None,
    ) -> Dict[str, bool]:
        """Flag states with persisted overrides applied.

        Args:
            overrides: Persisted ``{flag: value}``; unknown names and ``None``
                values are ignored.
            base: States to start from; defaults to the loaded states.
        """
        states = dict(base) if base is not None else self.get_all_flags()
        for name, value in (overrides or {}).items():
            if name in states and value is not None:
                states[name] = self.parse_bool(value, name)
        return states

    def get_flags_by_category(self, category: FeatureFlagCategory) -> Dict[str, bool]:
        return {
            name: flag.enabled for name, flag in self._flags.items() if flag.category is category
        }

    def get_flag_info(self, flag_name: str) -> Optional[Dict[str, Any]]:
        flag = self._flags.get(flag_name)
        if flag is None:
            return None
        return {
            "name": flag.name,
            "enabled": flag.enabled,
            "default": flag.default,
            "category": flag.category.value,
            "description": flag.description,
        }


_feature_flags = FeatureFlags()


def get_feature_flags() -> FeatureFlags:
    """Process-wide registry used by the app factory."""
    return _feature_flags
