"""
Copyright (c) 2025 Eric C. Mumford (@heymumford)
This file is part of ETOO, licensed under the MIT License.
See LICENSE file for details.
"""

"""
User-defined field handling.

Extra spreadsheet columns are mapped onto Octane user-defined fields (UDFs)
through a declarative table. Each entry says how the cell text is converted:
as a scalar, as a reference to one entity or as a multi-reference. The default
table can be replaced by a YAML file of the form::

    str_udf:
      kind: string
    usr_udf:
      kind: multiReference
      subtype: user
    def_list_udf:
      kind: multiReference
      subtype: list
      list: def_list
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

import requests
import yaml
from dateutil import tz

from etoo.excel_import_row import ExcelImportRow, MandatoryField
from etoo.octane_client import EntityNotFoundError, OctaneError
from etoo.octane_models import RELEASES, EntityRef
from etoo.reference_resolver import split_values
from etoo.run_context import RunContext
from etoo.spreadsheet import CELL_DATE_FORMAT, SpreadsheetRow

logger = logging.getLogger("etoo.udf_handler")

OCTANE_DATE_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

TRUE_VALUES = {"true", "yes", "1", "on"}
FALSE_VALUES = {"false", "no", "0", "off"}


class ScalarKind(str, Enum):
    STRING = "string"
    LONG = "long"
    FLOAT = "float"
    BOOLEAN = "boolean"
    DATE = "date"


@dataclass(frozen=True)
class UserRef:
    """Reference to a workspace user, given by email."""


@dataclass(frozen=True)
class ReleaseRef:
    """Reference to a release, given by name."""


@dataclass(frozen=True)
class ListRef:
    """Reference to an item of the list ``list_name``, given by item name."""

    list_name: str


RefKind = UserRef | ReleaseRef | ListRef


@dataclass(frozen=True)
class Scalar:
    kind: ScalarKind


@dataclass(frozen=True)
class Reference:
    ref: RefKind


@dataclass(frozen=True)
class MultiReference:
    ref: RefKind


ExtensionFieldSpec = Scalar | Reference | MultiReference

DEF_LIST = "def_list"

DEFAULT_UDF_SPECS: dict[str, ExtensionFieldSpec] = {
    "str_udf": Scalar(ScalarKind.STRING),
    "memo_udf": Scalar(ScalarKind.STRING),
    "long_udf": Scalar(ScalarKind.STRING),
    "int_udf": Scalar(ScalarKind.FLOAT),
    "date_udf": Scalar(ScalarKind.DATE),
    "bool_udf": Scalar(ScalarKind.BOOLEAN),
    "usr_ref_udf": Reference(UserRef()),
    "rel_ref_udf": Reference(ReleaseRef()),
    "list_ref_udf": Reference(ListRef(DEF_LIST)),
    "usr_udf": MultiReference(UserRef()),
    "rel_udf": MultiReference(ReleaseRef()),
    "def_list_udf": MultiReference(ListRef(DEF_LIST)),
}


def parse_udf_spec(name: str, entry: dict[str, Any]) -> ExtensionFieldSpec:
    """
    Build a field spec from its YAML form.

    Raises
    ------
        ValueError: If the kind or subtype is unknown or a list name is missing

    """
    if not isinstance(entry, dict) or "kind" not in entry:
        raise ValueError(f"UDF {name}: an entry with a 'kind' is required")

    kind = str(entry["kind"])
    if kind in ("reference", "multiReference"):
        subtype = entry.get("subtype")
        match subtype:
            case "user":
                ref: RefKind = UserRef()
            case "release":
                ref = ReleaseRef()
            case "list":
                if not entry.get("list"):
                    raise ValueError(f"UDF {name}: list subtype requires a 'list' name")
                ref = ListRef(str(entry["list"]))
            case _:
                raise ValueError(f"UDF {name}: unknown subtype {subtype!r}")
        return Reference(ref) if kind == "reference" else MultiReference(ref)

    try:
        return Scalar(ScalarKind(kind))
    except ValueError as e:
        raise ValueError(f"UDF {name}: unknown kind {kind!r}") from e


def load_udf_specs(path: Path) -> dict[str, ExtensionFieldSpec]:
    """Load a UDF table from a YAML file."""
    logger.info(f"Loading UDF configuration from {path}")
    if not path.exists():
        raise FileNotFoundError(f"UDF configuration not found at {path}")

    try:
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        logger.error(f"Failed to parse YAML file: {e}")
        raise

    if not isinstance(raw, dict):
        raise ValueError(f"UDF configuration {path} must be a mapping of field names")
    return {str(name): parse_udf_spec(str(name), entry) for name, entry in raw.items()}


def describe_spec(spec: ExtensionFieldSpec) -> tuple[str, str]:
    """Return the (kind, subtype) labels of a spec, for display."""
    match spec:
        case Scalar(kind=kind):
            return kind.value, ""
        case Reference(ref=ref):
            return "reference", _describe_ref(ref)
        case MultiReference(ref=ref):
            return "multiReference", _describe_ref(ref)
    raise TypeError(f"Unknown UDF spec {spec!r}")


def _describe_ref(ref: RefKind) -> str:
    match ref:
        case UserRef():
            return "user"
        case ReleaseRef():
            return "release"
        case ListRef(list_name=list_name):
            return f"list {list_name}"
    raise TypeError(f"Unknown reference kind {ref!r}")


def parse_boolean(text: str) -> bool:
    value = text.strip().lower()
    if value in TRUE_VALUES:
        return True
    if value in FALSE_VALUES:
        return False
    raise ValueError(f"'{text}' is not a boolean")


def parse_date(text: str) -> str:
    """
    Parse ``dd-mm-yyyy HH:MM:SS [zone]`` and return it as ISO-8601 UTC.

    The zone is any name known to the tz database (default UTC).
    """
    parts = text.strip().split()
    if len(parts) not in (2, 3):
        raise ValueError(f"'{text}' does not match {CELL_DATE_FORMAT} [zone]")

    value = datetime.strptime(" ".join(parts[:2]), CELL_DATE_FORMAT)
    zone = tz.UTC
    if len(parts) == 3:
        zone = tz.gettz(parts[2])
        if zone is None:
            raise ValueError(f"Unknown time zone '{parts[2]}'")
    return value.replace(tzinfo=zone).astimezone(tz.UTC).strftime(OCTANE_DATE_FORMAT)


class UDFHandler:
    """Maps the configured UDF columns of a row onto a manual test entity."""

    def __init__(self, specs: dict[str, ExtensionFieldSpec] | None = None):
        self.specs = dict(DEFAULT_UDF_SPECS if specs is None else specs)
        self.column_indexes: dict[str, int] = {}

    @classmethod
    def from_config(cls, path: Path | None) -> "UDFHandler":
        return cls(load_udf_specs(path) if path else None)

    def init_column_indexes(self, header: SpreadsheetRow) -> None:
        """Record the column of every configured UDF and log unused columns."""
        mandatory = set(MandatoryField.names())
        self.column_indexes = {}
        unused = []
        for index, cell in enumerate(header.cells):
            if cell is None:
                continue
            name = cell.strip()
            if name in mandatory:
                continue
            if name in self.specs and name not in self.column_indexes:
                self.column_indexes[name] = index
            else:
                unused.append(f"{name} (column {index})")

        if unused:
            logger.warning(f"Unused columns, ignored: {', '.join(unused)}")
        logger.debug(f"UDF columns: {self.column_indexes}")

    def add_udfs_to_entity(
        self, row: ExcelImportRow, entity: dict[str, Any], context: RunContext
    ) -> dict[str, Any]:
        """Set every UDF with a non-blank cell on ``entity`` and return it."""
        for name, index in self.column_indexes.items():
            text = row.row.cell(index)
            if text is None or not text.strip():
                continue
            try:
                value = self._convert(self.specs[name], text, context, name, row)
            except (OctaneError, requests.exceptions.RequestException) as e:
                logger.warning(
                    f"Unable to resolve UDF \"{name}\" for unique_id \"{row.unique_id}\": {e}. "
                    f"The field will be left blank."
                )
                continue
            if value is not None:
                entity[name] = value
        return entity

    def _convert(
        self,
        spec: ExtensionFieldSpec,
        text: str,
        context: RunContext,
        name: str,
        row: ExcelImportRow,
    ) -> Any:
        match spec:
            case Scalar(kind=kind):
                return self._scalar(kind, text, name, row)
            case Reference(ref=ref):
                resolved = self._resolve_single(ref, text.strip(), context, name, row)
                return resolved.as_reference() if resolved else None
            case MultiReference(ref=ref):
                return self._multi_reference(ref, text, context, name, row)
        raise TypeError(f"Unknown UDF spec {spec!r}")

    def _scalar(self, kind: ScalarKind, text: str, name: str, row: ExcelImportRow) -> Any:
        try:
            match kind:
                case ScalarKind.STRING:
                    return text
                case ScalarKind.LONG:
                    return int(float(text.strip()))
                case ScalarKind.FLOAT:
                    return float(text.strip())
                case ScalarKind.BOOLEAN:
                    return parse_boolean(text)
                case ScalarKind.DATE:
                    return parse_date(text)
        except (ValueError, OverflowError) as e:
            logger.warning(
                f"Error converting cell value at row with unique_id \"{row.unique_id}\": {e}. "
                f"The field \"{name}\" will be left blank. Original content: \"{text}\""
            )
        return None

    def _resolve_single(
        self, ref: RefKind, item: str, context: RunContext, name: str, row: ExcelImportRow
    ) -> EntityRef | None:
        match ref:
            case UserRef():
                user = context.cache.user(item)
                if user is None:
                    logger.warning(
                        f"User \"{item}\" of field \"{name}\" not found for unique_id "
                        f"\"{row.unique_id}\", the default user is used"
                    )
                    return context.cache.default_user
                return user
            case ReleaseRef():
                release = self._release(item, context)
                if release is None:
                    logger.warning(
                        f"Release \"{item}\" of field \"{name}\" not found for unique_id "
                        f"\"{row.unique_id}\", the default release is used"
                    )
                    return self._default_release(context)
                return release
            case ListRef(list_name=list_name):
                item_ref = self._list_item(list_name, item, context)
                if item_ref is None:
                    logger.warning(
                        f"For the entity with unique_id \"{row.unique_id}\" the list item "
                        f"\"{item}\" for udf with name \"{name}\" was not found"
                    )
                return item_ref
        raise TypeError(f"Unknown reference kind {ref!r}")

    def _multi_reference(
        self, ref: RefKind, text: str, context: RunContext, name: str, row: ExcelImportRow
    ) -> dict[str, list[dict[str, Any]]] | None:
        resolved: list[EntityRef] = []
        names: set[str | None] = set()

        for item in split_values(text):
            if not item:
                continue
            match ref:
                case ListRef(list_name=list_name):
                    entity = self._list_item(list_name, item, context)
                    if entity is None:
                        logger.warning(
                            f"The list item \"{item}\" for udf with name \"{name}\" was not found"
                        )
                        continue
                case UserRef():
                    entity = context.cache.user(item)
                case ReleaseRef():
                    entity = self._release(item, context)

            if entity is None:
                default = (
                    context.cache.default_user
                    if isinstance(ref, UserRef)
                    else self._default_release(context)
                )
                if default is None or default.name in names:
                    logger.warning(
                        f"Item \"{item}\" of field \"{name}\" does not exist on row with unique_id "
                        f"\"{row.unique_id}\" and is ignored"
                    )
                    continue
                logger.warning(
                    f"Item \"{item}\" of field \"{name}\" does not exist on row with unique_id "
                    f"\"{row.unique_id}\", the default is used instead"
                )
                entity = default
            elif entity.name in names:
                logger.warning(
                    f"Item \"{item}\" of field \"{name}\" is duplicated on row with unique_id "
                    f"\"{row.unique_id}\" and is ignored"
                )
                continue

            names.add(entity.name)
            resolved.append(entity)

        if not resolved:
            return None
        return {"data": [entity.as_reference() for entity in resolved]}

    def _release(self, release_name: str, context: RunContext) -> EntityRef | None:
        releases = context.cache.releases
        if release_name not in releases:
            releases[release_name] = context.client.get_entity_by_name(RELEASES, release_name)
        return releases[release_name]

    def _default_release(self, context: RunContext) -> EntityRef | None:
        release = self._release(context.cache.default_release_name, context)
        if release is None:
            logger.warning(f"Default release \"{context.cache.default_release_name}\" not found")
        return release

    def _list_item(self, list_name: str, item: str, context: RunContext) -> EntityRef | None:
        roots = context.cache.list_roots
        if list_name not in roots:
            try:
                roots[list_name] = context.client.get_list_root(list_name)
            except EntityNotFoundError:
                roots[list_name] = None
                raise
        if roots[list_name] is None:
            raise EntityNotFoundError(f"List \"{list_name}\" does not exist")
        return context.client.get_list_item(roots[list_name].id, item)
