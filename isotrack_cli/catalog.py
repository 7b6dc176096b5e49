from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Tuple

import yaml

from isotrack_cli.exceptions import NotFoundError, ValidationError
from isotrack_cli.models.controls import (
    AnnexControl,
    Category,
    ControlItem,
    ItemKind,
    ManagementClause,
)
from isotrack_cli.models.profiles import CompanyProfile, CompanySize

DATA_DIR = Path(__file__).parent / "data"

_ANNEX_A_FILE = "annex_a.yaml"
_CLAUSES_FILE = "management_clauses.yaml"
_CATEGORIES_FILE = "categories.yaml"
_PROFILES_FILE = "company_profiles.yaml"


@dataclass(frozen=True)
class Catalog:
    annex_a: Tuple[AnnexControl, ...]
    clauses: Tuple[ManagementClause, ...]
    annex_a_categories: Tuple[Category, ...]
    clause_categories: Tuple[Category, ...]
    profiles: Tuple[CompanyProfile, ...]

    def items(self) -> List[ControlItem]:
        """All items, clauses first, each in definition order."""
        return [*self.clauses, *self.annex_a]

    def find(self, item_id: str) -> Optional[ControlItem]:
        for item in self.items():
            if item.id == item_id:
                return item
        return None

    def get(self, item_id: str) -> ControlItem:
        item = self.find(item_id)
        if item is None:
            raise NotFoundError(f"Unknown control or clause: {item_id}")
        return item

    def categories(self, kind: ItemKind) -> Tuple[Category, ...]:
        if kind is ItemKind.ANNEX_A:
            return self.annex_a_categories
        return self.clause_categories

    def profile(self, size: CompanySize) -> CompanyProfile:
        for profile in self.profiles:
            if profile.size is size:
                return profile
        raise NotFoundError(f"No company profile defined for size '{size.value}'.")


@lru_cache(maxsize=None)
def default_catalog() -> Catalog:
    return load_catalog(DATA_DIR)


def load_catalog(data_dir: Path) -> Catalog:
    return build_catalog(
        annex_raw=_read_yaml(data_dir / _ANNEX_A_FILE),
        clauses_raw=_read_yaml(data_dir / _CLAUSES_FILE),
        categories_raw=_read_yaml(data_dir / _CATEGORIES_FILE),
        profiles_raw=_read_yaml(data_dir / _PROFILES_FILE),
    )


def build_catalog(
    annex_raw: Any,
    clauses_raw: Any,
    categories_raw: Any,
    profiles_raw: Any,
) -> Catalog:
    if not isinstance(categories_raw, dict):
        raise ValidationError("Category definitions must be a mapping.")
    annex_categories = _parse_categories(categories_raw.get("annex_a"), "annex_a")
    clause_categories = _parse_categories(categories_raw.get("clause"), "clause")

    annex_a = tuple(_parse_annex_control(raw) for raw in _as_list(annex_raw, _ANNEX_A_FILE))
    clauses = tuple(_parse_clause(raw) for raw in _as_list(clauses_raw, _CLAUSES_FILE))

    _check_unique_ids([*clauses, *annex_a])
    _check_groups(annex_a, annex_categories)
    _check_groups(clauses, clause_categories)

    profiles = _parse_profiles(
        profiles_raw,
        annex_ids={c.id for c in annex_a},
        clause_ids={c.id for c in clauses},
    )

    return Catalog(
        annex_a=annex_a,
        clauses=clauses,
        annex_a_categories=annex_categories,
        clause_categories=clause_categories,
        profiles=profiles,
    )


def _read_yaml(path: Path) -> Any:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return yaml.safe_load(f)
    except OSError as exc:
        raise ValidationError(f"Cannot read catalog file {path.name}.") from exc
    except yaml.YAMLError as exc:
        raise ValidationError(f"Invalid YAML in catalog file {path.name}.") from exc


def _as_list(raw: Any, source: str) -> List[Dict[str, Any]]:
    if not isinstance(raw, list):
        raise ValidationError(f"Expected a list of entries in {source}.")
    for entry in raw:
        if not isinstance(entry, dict):
            raise ValidationError(f"Every entry in {source} must be a mapping.")
    return raw


def _require_str(raw: Dict[str, Any], key: str) -> str:
    value = raw.get(key)
    if value is None or not str(value).strip():
        ident = raw.get("id", "?")
        raise ValidationError(f"Catalog entry '{ident}' is missing '{key}'.")
    return str(value)


def _optional_str(raw: Dict[str, Any], key: str) -> Optional[str]:
    value = raw.get(key)
    if value is None:
        return None
    return str(value).strip() or None


def _parse_categories(raw: Any, kind: str) -> Tuple[Category, ...]:
    entries = _as_list(raw, f"categories.{kind}")
    return tuple(
        Category(
            id=_require_str(entry, "id"),
            name=_require_str(entry, "name"),
            name_ko=_require_str(entry, "name_ko"),
        )
        for entry in entries
    )


def _parse_annex_control(raw: Dict[str, Any]) -> AnnexControl:
    return AnnexControl(
        id=_require_str(raw, "id"),
        category=_require_str(raw, "category"),
        title=_require_str(raw, "title"),
        title_ko=_require_str(raw, "title_ko"),
        description=_require_str(raw, "description"),
        description_ko=_require_str(raw, "description_ko"),
        tip=_optional_str(raw, "tip"),
        evidence=_optional_str(raw, "evidence"),
    )


def _parse_clause(raw: Dict[str, Any]) -> ManagementClause:
    return ManagementClause(
        id=_require_str(raw, "id"),
        clause=_require_str(raw, "clause"),
        category=_require_str(raw, "category"),
        category_ko=_require_str(raw, "category_ko"),
        title=_require_str(raw, "title"),
        title_ko=_require_str(raw, "title_ko"),
        description=_require_str(raw, "description"),
        description_ko=_require_str(raw, "description_ko"),
        tip=_optional_str(raw, "tip"),
        evidence=_optional_str(raw, "evidence"),
    )


def _check_unique_ids(items: List[ControlItem]) -> None:
    seen: Set[str] = set()
    for item in items:
        if item.id in seen:
            raise ValidationError(f"Duplicate catalog id: {item.id}")
        seen.add(item.id)


def _check_groups(items: Tuple[ControlItem, ...], categories: Tuple[Category, ...]) -> None:
    known = {c.id for c in categories}
    for item in items:
        if item.group not in known:
            raise ValidationError(
                f"Catalog entry '{item.id}' references unknown category '{item.group}'."
            )


def _parse_profiles(
    raw: Any,
    annex_ids: Set[str],
    clause_ids: Set[str],
) -> Tuple[CompanyProfile, ...]:
    if not isinstance(raw, dict):
        raise ValidationError("Company profiles must be a mapping keyed by company size.")

    profiles: List[CompanyProfile] = []
    for key, entry in raw.items():
        try:
            size = CompanySize(str(key))
        except ValueError as exc:
            raise ValidationError(f"Unknown company size in profiles: {key}") from exc
        if not isinstance(entry, dict):
            raise ValidationError(f"Profile '{key}' must be a mapping.")

        annex = _profile_ids(entry, "annex_a_controls", size, annex_ids)
        clauses = _profile_ids(entry, "management_clauses", size, clause_ids)
        profiles.append(
            CompanyProfile(
                size=size,
                name=_require_str(entry, "name"),
                name_ko=_require_str(entry, "name_ko"),
                description=_optional_str(entry, "description") or "",
                annex_a_controls=annex,
                management_clauses=clauses,
            )
        )
    return tuple(profiles)


def _profile_ids(
    entry: Dict[str, Any],
    key: str,
    size: CompanySize,
    known: Set[str],
) -> Tuple[str, ...]:
    ids = entry.get(key) or []
    if not isinstance(ids, list):
        raise ValidationError(f"Profile '{size.value}': '{key}' must be a list.")
    result: List[str] = []
    for raw_id in ids:
        item_id = str(raw_id)
        if item_id not in known:
            raise ValidationError(
                f"Profile '{size.value}' references unknown id '{item_id}' in {key}."
            )
        if item_id in result:
            raise ValidationError(
                f"Profile '{size.value}' lists '{item_id}' more than once."
            )
        result.append(item_id)
    return tuple(result)
