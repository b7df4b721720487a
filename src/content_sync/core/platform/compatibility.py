"""Pre-push compatibility checks against the remote platform's rules.

A definition can be valid locally and still be refused by the platform:
keys must follow its naming rules and every field type must be one it can
store. Errors block the push, warnings are reported and the push goes on.
"""

import logging
import re
from dataclasses import dataclass
from dataclasses import field as dataclass_field
from typing import Any, List, Tuple

from ...models import ContentTypeDefinition

logger = logging.getLogger(__name__)

KEY_PATTERN = re.compile(r"^[a-zA-Z][a-zA-Z0-9_-]*$")
MAX_KEY_LENGTH = 100
RESERVED_PREFIXES: Tuple[str, ...] = ("sys_", "__")

# Types a list field may hold
LIST_ITEM_TYPES: Tuple[str, ...] = (
    "text",
    "string",
    "number",
    "integer",
    "float",
    "boolean",
    "date",
    "datetime",
    "reference",
    "media",
    "image",
    "file",
)
STORED_AS_JSON: Tuple[str, ...] = ("json", "object")
MAX_NESTING_DEPTH = 3


class IncompatibleContentTypeError(ValueError):
    """Raised when definitions break the platform's rules."""

    def __init__(self, message: str, problems: List[str]):
        """Initialize with a summary and one line per problem."""
        super().__init__(message)
        self.problems = problems


@dataclass
class CompatibilityIssue:
    """One rule a definition breaks."""

    path: str
    message: str
    severity: str = "error"

    def __str__(self) -> str:
        return f"{self.path}: {self.message}"


@dataclass
class CompatibilityResult:
    """Outcome of checking one definition."""

    type_key: str
    errors: List[CompatibilityIssue] = dataclass_field(default_factory=list)
    warnings: List[CompatibilityIssue] = dataclass_field(default_factory=list)

    @property
    def compatible(self) -> bool:
        """True when nothing blocks the push."""
        return not self.errors


def _nesting_depth(value: Any, depth: int = 1) -> int:
    children = value.values() if isinstance(value, dict) else value
    nested = [
        _nesting_depth(child, depth + 1)
        for child in children
        if isinstance(child, (dict, list))
    ]
    return max([depth, *nested])


class CompatibilityChecker:
    """Checks definitions against the platform's naming and field rules."""

    def check(self, definition: ContentTypeDefinition) -> CompatibilityResult:
        """Check one definition.

        Args:
            definition: Validated local definition about to be pushed

        Returns:
            CompatibilityResult with errors and warnings
        """
        result = CompatibilityResult(definition.key)
        self._check_key(result, "key", definition.key, "Content type key")
        for index, descriptor in enumerate(definition.fields):
            path = f"fields[{index}]"
            self._check_key(result, f"{path}.key", descriptor.key, "Field key")
            self._check_field_type(result, path, descriptor)

        for issue in result.warnings:
            logger.warning("%s %s", definition.key, issue)
        if result.errors:
            logger.error(
                "%s is not compatible with the platform: %d error(s)",
                definition.key,
                len(result.errors),
            )
        return result

    def check_all(self, definitions: List[ContentTypeDefinition]) -> None:
        """Check definitions about to be pushed.

        Raises:
            IncompatibleContentTypeError: If any definition has errors
        """
        problems = []
        for definition in definitions:
            result = self.check(definition)
            problems.extend(f"{result.type_key} {issue}" for issue in result.errors)
        if problems:
            raise IncompatibleContentTypeError(
                f"{len(problems)} platform compatibility error(s)", problems
            )

    @staticmethod
    def _check_key(
        result: CompatibilityResult, path: str, key: str, label: str
    ) -> None:
        if len(key) > MAX_KEY_LENGTH:
            result.errors.append(
                CompatibilityIssue(
                    path, f"{label} exceeds {MAX_KEY_LENGTH} characters"
                )
            )
        if not KEY_PATTERN.match(key):
            result.errors.append(
                CompatibilityIssue(
                    path,
                    f"{label} must start with a letter and contain only "
                    "letters, digits, underscores and hyphens",
                )
            )
        if key.lower().startswith(RESERVED_PREFIXES):
            result.errors.append(
                CompatibilityIssue(
                    path,
                    f"{label} uses a reserved prefix ({', '.join(RESERVED_PREFIXES)})",
                )
            )

    @staticmethod
    def _check_field_type(
        result: CompatibilityResult, path: str, descriptor: Any
    ) -> None:
        field_type = descriptor.type
        settings = descriptor.settings

        if field_type in ("list", "array"):
            item_type = str(settings.get("item_type", "")).lower()
            if item_type not in LIST_ITEM_TYPES:
                result.errors.append(
                    CompatibilityIssue(
                        f"{path}.settings.item_type",
                        f"List items of type '{item_type}' are not supported",
                    )
                )

        if field_type in STORED_AS_JSON:
            result.warnings.append(
                CompatibilityIssue(
                    f"{path}.type",
                    f"Field type '{field_type}' is stored as a JSON string",
                    "warning",
                )
            )
            schema = settings.get("schema")
            nested = isinstance(schema, (dict, list))
            if nested and _nesting_depth(schema) > MAX_NESTING_DEPTH:
                result.errors.append(
                    CompatibilityIssue(
                        f"{path}.settings.schema",
                        f"Nesting deeper than {MAX_NESTING_DEPTH} levels "
                        "is not supported",
                    )
                )

        if settings.get("regex"):
            result.warnings.append(
                CompatibilityIssue(
                    f"{path}.settings.regex",
                    "Regex validation is ignored by the platform",
                    "warning",
                )
            )
