"""
Quest Template Catalog
======================

Read-only lookup over the versioned template definitions under the
``quest_catalog`` config key:

    quest_catalog:
      version: 1
      daily:
        <world_id>: [<template>, ...]
      weekly: [<template>, ...]

Templates are parsed and validated once. ``reload_if_changed()`` rebuilds
the lookup tables when ``quest_catalog.version`` moves.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from questline.core.config.manager import ConfigManager
from questline.core.logging.logger import get_logger
from questline.database.models.enums import Cadence, ObjectiveType, QuestCategory
from questline.modules.quests.models import ObjectiveSpec, Prerequisites, QuestTemplate
from questline.modules.rewards.models import parse_reward
from questline.modules.shared.exceptions import InvalidStateError, NotFoundError

logger = get_logger(__name__)

CATALOG_CONFIG_KEY = "quest_catalog"


def _invalid(template_id: str, reason: str) -> InvalidStateError:
    return InvalidStateError("load_catalog", reason, template_id=template_id)


def _parse_objective(template_id: str, index: int, raw: Mapping[str, Any]) -> ObjectiveSpec:
    try:
        objective_type = ObjectiveType(raw["type"])
    except (KeyError, ValueError) as exc:
        raise _invalid(template_id, f"objective {index} has unknown type {raw.get('type')!r}") from exc

    target = raw.get("target")
    if not isinstance(target, int) or isinstance(target, bool) or target <= 0:
        raise _invalid(template_id, f"objective {index} target must be a positive integer, got {target!r}")

    return ObjectiveSpec(
        type=objective_type,
        target=target,
        description=str(raw.get("description", "")),
        subject_id=raw.get("subject") or None,
    )


def _parse_prerequisites(raw: Optional[Mapping[str, Any]]) -> Prerequisites:
    if not raw:
        return Prerequisites()
    return Prerequisites(
        minimum_level=raw.get("minimum_level"),
        required_subject_xp=raw.get("required_subject_xp"),
        completed_quests=tuple(raw.get("completed_quests") or ()),
    )


def parse_template(raw: Mapping[str, Any], cadence: Cadence, world_id: Optional[str] = None) -> QuestTemplate:
    """
    Build one template from its config form.

    Raises:
        InvalidStateError: Missing fields, unknown enums, non-positive targets
            or malformed rewards
    """
    template_id = raw.get("id")
    if not template_id:
        raise _invalid("<unknown>", "template is missing 'id'")
    template_id = str(template_id)

    objectives_raw = raw.get("objectives") or []
    if not objectives_raw:
        raise _invalid(template_id, "template has no objectives")

    try:
        category = QuestCategory(raw.get("category", QuestCategory.LEARNING.value))
    except ValueError as exc:
        raise _invalid(template_id, f"unknown category {raw.get('category')!r}") from exc

    try:
        rewards = tuple(parse_reward(r) for r in raw.get("rewards") or [])
    except (ValueError, TypeError) as exc:
        raise _invalid(template_id, f"malformed reward: {exc}") from exc

    return QuestTemplate(
        id=template_id,
        title=str(raw.get("title", template_id)),
        description=str(raw.get("description", "")),
        cadence=cadence,
        category=category,
        objectives=tuple(_parse_objective(template_id, i, o) for i, o in enumerate(objectives_raw)),
        rewards=rewards,
        difficulty=int(raw.get("difficulty", 1)),
        estimated_minutes=int(raw.get("estimated_minutes", 0)),
        world_id=world_id,
        subject_id=raw.get("subject_id") or None,
        prerequisites=_parse_prerequisites(raw.get("prerequisites")),
    )


class QuestTemplateCatalog:
    """
    Immutable-by-contract template lookup.

    Daily templates are grouped by world; weekly templates form one pool.
    """

    def __init__(
        self,
        daily: Mapping[str, Iterable[QuestTemplate]],
        weekly: Iterable[QuestTemplate],
        version: Any = None,
        config_manager: Optional[Any] = None,
    ) -> None:
        self._config = config_manager
        self._install(daily, weekly, version)

    def _install(
        self,
        daily: Mapping[str, Iterable[QuestTemplate]],
        weekly: Iterable[QuestTemplate],
        version: Any,
    ) -> None:
        daily_by_world: Dict[str, Tuple[QuestTemplate, ...]] = {w: tuple(ts) for w, ts in daily.items()}
        weekly_pool = tuple(weekly)

        by_id: Dict[str, QuestTemplate] = {}
        for template in [*(t for ts in daily_by_world.values() for t in ts), *weekly_pool]:
            if template.id in by_id:
                raise _invalid(template.id, "duplicate template id")
            by_id[template.id] = template

        self._daily = daily_by_world
        self._weekly = weekly_pool
        self._by_id = by_id
        self.version = version

    # ========================================================================
    # Construction
    # ========================================================================

    @staticmethod
    def _parse_mapping(data: Mapping[str, Any]) -> Tuple[Dict[str, List[QuestTemplate]], List[QuestTemplate], Any]:
        daily = {
            str(world_id): [parse_template(t, Cadence.DAILY, str(world_id)) for t in templates or []]
            for world_id, templates in (data.get("daily") or {}).items()
        }
        weekly = [parse_template(t, Cadence.WEEKLY) for t in data.get("weekly") or []]
        return daily, weekly, data.get("version")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], config_manager: Optional[Any] = None) -> QuestTemplateCatalog:
        daily, weekly, version = cls._parse_mapping(data)
        return cls(daily, weekly, version=version, config_manager=config_manager)

    @classmethod
    def from_config(cls, config_manager: Any = ConfigManager) -> QuestTemplateCatalog:
        """
        Load the catalog from ``quest_catalog`` in the merged YAML config.

        Raises:
            InvalidStateError: The catalog is missing or invalid
        """
        data = config_manager.get(CATALOG_CONFIG_KEY)
        if not isinstance(data, Mapping):
            raise _invalid("<catalog>", f"'{CATALOG_CONFIG_KEY}' is not configured")

        catalog = cls.from_mapping(data, config_manager=config_manager)
        logger.info(
            "Quest template catalog loaded",
            extra={
                "catalog_version": catalog.version,
                "worlds": len(catalog._daily),
                "templates": len(catalog._by_id),
            },
        )
        return catalog

    def reload_if_changed(self) -> bool:
        """
        Rebuild from config when ``quest_catalog.version`` differs.

        Returns True when the catalog was swapped. A catalog not built from
        config never reloads.
        """
        if self._config is None:
            return False

        version = self._config.get(f"{CATALOG_CONFIG_KEY}.version")
        if version == self.version:
            return False

        data = self._config.get(CATALOG_CONFIG_KEY)
        if not isinstance(data, Mapping):
            raise _invalid("<catalog>", f"'{CATALOG_CONFIG_KEY}' is not configured")

        previous = self.version
        daily, weekly, new_version = self._parse_mapping(data)
        self._install(daily, weekly, new_version)
        logger.info(
            "Quest template catalog reloaded",
            extra={"previous_version": previous, "catalog_version": new_version},
        )
        return True

    # ========================================================================
    # Lookup
    # ========================================================================

    @property
    def worlds(self) -> Tuple[str, ...]:
        return tuple(self._daily)

    def daily_for_world(self, world_id: str) -> Tuple[QuestTemplate, ...]:
        return self._daily.get(world_id, ())

    def weekly(self) -> Tuple[QuestTemplate, ...]:
        return self._weekly

    def get(self, template_id: str) -> QuestTemplate:
        try:
            return self._by_id[template_id]
        except KeyError:
            raise NotFoundError("QuestTemplate", template_id) from None

    def __contains__(self, template_id: object) -> bool:
        return template_id in self._by_id

    def __len__(self) -> int:
        return len(self._by_id)
