"""
Block Content Editor.

Every block type has a fixed field schema. ``render`` turns a block's content
into the field set the front-end draws inside the node, filling omitted or
out-of-range values with the schema default. ``on_field_change`` validates a
single edited field and returns the partial content patch that is merged into
the node.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from .block_templates import BlockType
from .exceptions import InvalidFieldValue


class FieldKind(Enum):
    """Input widget kinds."""
    TEXT = "text"
    TEXTAREA = "textarea"
    CHOICE = "choice"
    INTEGER = "integer"


@dataclass(frozen=True)
class FieldSpec:
    """Schema of one editable content field."""
    key: str
    kind: FieldKind
    label: str
    default: Any = ''
    placeholder: str = ''
    choices: Tuple[str, ...] = ()
    minimum: Optional[int] = None
    maximum: Optional[int] = None
    rows: int = 1

    def coerce(self, value: Any) -> Any:
        """Normalize a value for storage. Raises ValueError if it can't fit."""
        if self.kind == FieldKind.INTEGER:
            return self._clamp(_parse_int(value))
        if self.kind == FieldKind.CHOICE:
            if value not in self.choices:
                raise ValueError(f"expected one of {', '.join(self.choices)}")
            return value
        if value is None:
            return ''
        return str(value)

    def display_value(self, content: Dict[str, Any]) -> Any:
        """Value to show for this field; never None."""
        value = content.get(self.key)
        if value is None:
            return self.default
        try:
            return self.coerce(value)
        except ValueError:
            return self.default

    def _clamp(self, value: int) -> int:
        if self.minimum is not None and value < self.minimum:
            return self.minimum
        if self.maximum is not None and value > self.maximum:
            return self.maximum
        return value

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'key': self.key,
            'kind': self.kind.value,
            'label': self.label,
            'default': self.default,
            'placeholder': self.placeholder,
            'rows': self.rows,
        }
        if self.choices:
            data['choices'] = list(self.choices)
        if self.kind == FieldKind.INTEGER:
            data['min'] = self.minimum
            data['max'] = self.maximum
        return data


@dataclass
class RenderedField:
    """A field spec paired with the value to display."""
    spec: FieldSpec
    value: Any

    @property
    def key(self) -> str:
        return self.spec.key

    def to_dict(self) -> Dict[str, Any]:
        data = self.spec.to_dict()
        data['value'] = self.value
        return data


def _parse_int(value: Any) -> int:
    # Unparseable input stores 0, like an empty number input
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        try:
            return int(value)
        except (ValueError, OverflowError):
            return 0
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        try:
            return int(float(str(value).strip()))
        except (TypeError, ValueError, OverflowError):
            return 0


PRIORITY_LEVELS = ('high', 'medium', 'low')
NFR_TYPES = ('performance', 'security', 'usability', 'reliability', 'maintainability')
DEPENDENCY_TYPES = ('internal', 'external', 'technical', 'business')

STORY_POINTS_MIN = 0
STORY_POINTS_MAX = 13


FIELD_SCHEMAS: Dict[BlockType, Tuple[FieldSpec, ...]] = {
    BlockType.FUNCTIONAL_REQ: (
        FieldSpec('description', FieldKind.TEXTAREA, 'Description',
                  placeholder='Describe the functional requirement...', rows=3),
        FieldSpec('priority', FieldKind.CHOICE, 'Priority', default='medium',
                  choices=PRIORITY_LEVELS),
        FieldSpec('category', FieldKind.TEXT, 'Category', placeholder='Category...'),
    ),
    BlockType.NON_FUNCTIONAL_REQ: (
        FieldSpec('description', FieldKind.TEXTAREA, 'Description',
                  placeholder='Describe the non-functional requirement...', rows=3),
        FieldSpec('type', FieldKind.CHOICE, 'Type', default='performance',
                  choices=NFR_TYPES),
    ),
    BlockType.USER_STORY: (
        FieldSpec('story', FieldKind.TEXTAREA, 'Story',
                  placeholder='As a [role] I want [action] so that [value]...', rows=3),
        FieldSpec('acceptance', FieldKind.TEXT, 'Acceptance criteria',
                  placeholder='Acceptance criteria...'),
        FieldSpec('points', FieldKind.INTEGER, 'Story Points', default=0,
                  minimum=STORY_POINTS_MIN, maximum=STORY_POINTS_MAX),
    ),
    BlockType.USE_CASE: (
        FieldSpec('title', FieldKind.TEXT, 'Title', placeholder='Use case name...'),
        FieldSpec('actor', FieldKind.TEXT, 'Actor', placeholder='Actor...'),
        FieldSpec('steps', FieldKind.TEXTAREA, 'Steps',
                  placeholder='1. The user...\n2. The system...', rows=3),
        FieldSpec('conditions', FieldKind.TEXTAREA, 'Conditions',
                  placeholder='Preconditions and postconditions...', rows=2),
    ),
    BlockType.CONSTRAINTS: (
        FieldSpec('text', FieldKind.TEXTAREA, 'Constraint',
                  placeholder='Describe the constraint...', rows=3),
        FieldSpec('impact', FieldKind.CHOICE, 'Impact', default='medium',
                  choices=PRIORITY_LEVELS),
    ),
    BlockType.NOTES: (
        FieldSpec('text', FieldKind.TEXTAREA, 'Note', placeholder='Add text...', rows=4),
    ),
    BlockType.DEPENDENCIES: (
        FieldSpec('text', FieldKind.TEXTAREA, 'Dependency',
                  placeholder='Describe the dependency...', rows=3),
        FieldSpec('type', FieldKind.CHOICE, 'Type', default='internal',
                  choices=DEPENDENCY_TYPES),
    ),
}

# Unrecognised block types are edited as plain notes
FALLBACK_BLOCK_TYPE = BlockType.NOTES


def _check_schemas_exhaustive():
    missing = [bt.value for bt in BlockType if bt not in FIELD_SCHEMAS]
    if missing:
        raise RuntimeError(f"No field schema for block types: {', '.join(missing)}")


_check_schemas_exhaustive()


def _resolve(block_type: Union[BlockType, str, None]) -> BlockType:
    if isinstance(block_type, BlockType):
        return block_type
    try:
        return BlockType(block_type)
    except ValueError:
        return FALLBACK_BLOCK_TYPE


class BlockContentEditor:
    """Renders block content into field sets and turns edits into patches."""

    def __init__(self, schemas: Optional[Dict[BlockType, Tuple[FieldSpec, ...]]] = None):
        self.schemas = schemas if schemas is not None else FIELD_SCHEMAS

    def fields_for(self, block_type: Union[BlockType, str]) -> Tuple[FieldSpec, ...]:
        return self.schemas.get(_resolve(block_type), self.schemas[FALLBACK_BLOCK_TYPE])

    def field_keys(self, block_type: Union[BlockType, str]) -> List[str]:
        return [spec.key for spec in self.fields_for(block_type)]

    def get_field(self, block_type: Union[BlockType, str], field_key: str) -> FieldSpec:
        for spec in self.fields_for(block_type):
            if spec.key == field_key:
                return spec
        raise InvalidFieldValue(
            f"Block type {_resolve(block_type).value} has no field {field_key!r}",
            _resolve(block_type).value, field_key
        )

    def default_content(self, block_type: Union[BlockType, str]) -> Dict[str, Any]:
        return {spec.key: spec.default for spec in self.fields_for(block_type)}

    def render(self, block_type: Union[BlockType, str],
               content: Optional[Dict[str, Any]]) -> List[RenderedField]:
        """Build the field set for a block, substituting defaults as needed."""
        content = content or {}
        return [RenderedField(spec, spec.display_value(content))
                for spec in self.fields_for(block_type)]

    def on_field_change(self, block_type: Union[BlockType, str],
                        field_key: str, new_value: Any) -> Dict[str, Any]:
        """Validate one field edit and return the content patch for it.

        Raises:
            InvalidFieldValue: unknown field, or a choice outside the allowed set.
        """
        spec = self.get_field(block_type, field_key)
        try:
            value = spec.coerce(new_value)
        except ValueError as e:
            raise InvalidFieldValue(
                f"Invalid value for {field_key}: {e}",
                _resolve(block_type).value, field_key,
                details={'value': new_value}
            )
        return {field_key: value}

    def normalize_patch(self, block_type: Union[BlockType, str],
                        partial: Dict[str, Any]) -> Dict[str, Any]:
        """Validate a multi-field patch; keys outside the schema are dropped."""
        keys = set(self.field_keys(block_type))
        patch = {}
        for key, value in partial.items():
            if key in keys:
                patch.update(self.on_field_change(block_type, key, value))
        return patch

    def sanitize_content(self, block_type: Union[BlockType, str],
                         content: Dict[str, Any]) -> Dict[str, Any]:
        """Restrict stored content to the schema keys, keeping stored values
        where they fit and falling back to defaults where they don't."""
        return {spec.key: spec.display_value(content) for spec in self.fields_for(block_type)}


def use_case_steps(content: Dict[str, Any]) -> List[str]:
    """Split a use case's newline-delimited steps into a list."""
    steps = content.get('steps') or ''
    return [line.strip() for line in str(steps).splitlines() if line.strip()]


_default_editor: Optional[BlockContentEditor] = None


def get_editor() -> BlockContentEditor:
    global _default_editor
    if _default_editor is None:
        _default_editor = BlockContentEditor()
    return _default_editor
