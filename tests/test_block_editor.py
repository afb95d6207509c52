"""
Unit tests for the Block Content Editor.
"""

import pytest
from hypothesis import given, strategies as st

from ucd_canvas_core.block_editor import (
    BlockContentEditor, FieldKind, FIELD_SCHEMAS, STORY_POINTS_MAX, STORY_POINTS_MIN,
    get_editor, use_case_steps
)
from ucd_canvas_core.block_templates import BlockType, get_registry
from ucd_canvas_core.exceptions import InvalidFieldValue


class TestFieldSchemas:
    """Test cases for the per-type field schemas."""

    def test_schema_keys_match_template_defaults(self):
        """Test every schema describes exactly its template's default content."""
        editor = BlockContentEditor()

        for template in get_registry():
            assert editor.field_keys(template.block_type) == list(template.default_content)
            assert editor.default_content(template.block_type) == template.new_content()

    def test_user_story_fields(self):
        """Test the user story form layout."""
        specs = FIELD_SCHEMAS[BlockType.USER_STORY]

        assert [s.key for s in specs] == ['story', 'acceptance', 'points']
        assert specs[0].kind == FieldKind.TEXTAREA
        assert specs[2].kind == FieldKind.INTEGER
        assert (specs[2].minimum, specs[2].maximum) == (0, 13)

    def test_choice_fields(self):
        """Test the choice sets of enumerated fields."""
        editor = BlockContentEditor()

        assert editor.get_field(BlockType.FUNCTIONAL_REQ, 'priority').choices == ('high', 'medium', 'low')
        assert editor.get_field(BlockType.CONSTRAINTS, 'impact').choices == ('high', 'medium', 'low')
        assert editor.get_field(BlockType.NON_FUNCTIONAL_REQ, 'type').choices == (
            'performance', 'security', 'usability', 'reliability', 'maintainability'
        )
        assert editor.get_field(BlockType.DEPENDENCIES, 'type').choices == (
            'internal', 'external', 'technical', 'business'
        )

    def test_unknown_type_falls_back_to_notes(self):
        """Test unrecognised types are edited as plain notes."""
        editor = BlockContentEditor()

        assert editor.field_keys("EPIC") == ['text']
        assert editor.field_keys(None) == ['text']

    def test_field_spec_to_dict(self):
        """Test field spec serialization."""
        data = BlockContentEditor().get_field(BlockType.USER_STORY, 'points').to_dict()

        assert data['kind'] == 'integer'
        assert data['min'] == 0
        assert data['max'] == 13
        assert 'choices' not in data


class TestRender:
    """Test cases for rendering block content into fields."""

    def setup_method(self):
        self.editor = BlockContentEditor()

    def test_render_functional_requirement(self):
        """Test rendering a functional requirement."""
        fields = self.editor.render(BlockType.FUNCTIONAL_REQ, {
            'description': 'Login', 'priority': 'high', 'category': 'Auth'
        })

        assert [(f.key, f.value) for f in fields] == [
            ('description', 'Login'), ('priority', 'high'), ('category', 'Auth')
        ]

    def test_render_fills_missing_values_with_defaults(self):
        """Test omitted fields render with their defaults."""
        fields = self.editor.render(BlockType.FUNCTIONAL_REQ, {})

        values = {f.key: f.value for f in fields}
        assert values == {'description': '', 'priority': 'medium', 'category': ''}

    def test_render_none_content(self):
        """Test rendering a block with no content at all."""
        fields = self.editor.render(BlockType.USER_STORY, None)

        assert {f.key: f.value for f in fields} == {'story': '', 'acceptance': '', 'points': 0}

    def test_render_out_of_range_choice_shows_default(self):
        """Test a stored choice outside the allowed set falls back to default."""
        fields = self.editor.render(BlockType.CONSTRAINTS, {'text': 'x', 'impact': 'critical'})

        assert fields[1].value == 'medium'

    def test_render_clamps_story_points(self):
        """Test stored points outside the range render clamped."""
        fields = self.editor.render(BlockType.USER_STORY, {'points': 40})

        assert fields[2].value == 13

    def test_rendered_field_to_dict(self):
        """Test rendered field serialization carries the value."""
        field = self.editor.render(BlockType.NOTES, {'text': 'hello'})[0]

        data = field.to_dict()
        assert data['key'] == 'text'
        assert data['value'] == 'hello'
        assert data['rows'] == 4


class TestFieldChange:
    """Test cases for turning field edits into content patches."""

    def setup_method(self):
        self.editor = BlockContentEditor()

    def test_text_change(self):
        """Test a free text edit produces a single-key patch."""
        patch = self.editor.on_field_change(BlockType.USE_CASE, 'actor', 'Customer')

        assert patch == {'actor': 'Customer'}

    def test_choice_change(self):
        """Test a valid choice edit."""
        patch = self.editor.on_field_change(BlockType.FUNCTIONAL_REQ, 'priority', 'low')

        assert patch == {'priority': 'low'}

    def test_invalid_choice_rejected(self):
        """Test a choice outside the allowed set."""
        with pytest.raises(InvalidFieldValue) as exc_info:
            self.editor.on_field_change(BlockType.FUNCTIONAL_REQ, 'priority', 'urgent')

        assert exc_info.value.field_key == 'priority'
        assert exc_info.value.block_type == 'FUNCTIONAL_REQ'
        assert exc_info.value.details == {'value': 'urgent'}

    def test_unknown_field_rejected(self):
        """Test editing a field the block type doesn't have."""
        with pytest.raises(InvalidFieldValue):
            self.editor.on_field_change(BlockType.NOTES, 'priority', 'high')

    def test_points_clamped_high(self):
        """Test story points above the maximum are stored as 13."""
        assert self.editor.on_field_change(BlockType.USER_STORY, 'points', 20) == {'points': 13}

    def test_points_clamped_low(self):
        """Test negative story points are stored as 0."""
        assert self.editor.on_field_change(BlockType.USER_STORY, 'points', -5) == {'points': 0}

    def test_points_parsed_from_text(self):
        """Test number-input text is parsed."""
        assert self.editor.on_field_change(BlockType.USER_STORY, 'points', '8') == {'points': 8}
        assert self.editor.on_field_change(BlockType.USER_STORY, 'points', ' 5 ') == {'points': 5}
        assert self.editor.on_field_change(BlockType.USER_STORY, 'points', '3.7') == {'points': 3}

    def test_points_unparseable_stored_as_zero(self):
        """Test empty or garbage number input stores 0."""
        assert self.editor.on_field_change(BlockType.USER_STORY, 'points', '') == {'points': 0}
        assert self.editor.on_field_change(BlockType.USER_STORY, 'points', 'abc') == {'points': 0}
        assert self.editor.on_field_change(BlockType.USER_STORY, 'points', None) == {'points': 0}
        assert self.editor.on_field_change(BlockType.USER_STORY, 'points', float('nan')) == {'points': 0}

    def test_text_none_becomes_empty(self):
        """Test clearing a text field."""
        assert self.editor.on_field_change(BlockType.NOTES, 'text', None) == {'text': ''}

    def test_normalize_patch_drops_unknown_keys(self):
        """Test multi-field patches keep only schema keys."""
        patch = self.editor.normalize_patch(BlockType.USER_STORY, {
            'story': 'As a user...', 'points': 99, 'colour': 'red'
        })

        assert patch == {'story': 'As a user...', 'points': 13}

    def test_normalize_patch_rejects_bad_choice(self):
        """Test a multi-field patch is rejected as a whole on a bad choice."""
        with pytest.raises(InvalidFieldValue):
            self.editor.normalize_patch(BlockType.DEPENDENCIES, {'text': 'x', 'type': 'legal'})

    def test_sanitize_content(self):
        """Test stored content is reduced to schema keys with valid values."""
        content = self.editor.sanitize_content(BlockType.DEPENDENCIES, {
            'text': 'Payment API', 'type': 'unknown', 'extra': 1
        })

        assert content == {'text': 'Payment API', 'type': 'internal'}


class TestUseCaseSteps:
    """Test cases for splitting use case steps."""

    def test_split_steps(self):
        """Test newline-delimited steps become a list."""
        steps = use_case_steps({'steps': '1. Open app\n\n2. Log in  \n'})

        assert steps == ['1. Open app', '2. Log in']

    def test_no_steps(self):
        """Test absent steps."""
        assert use_case_steps({}) == []


def test_get_editor_is_shared():
    """Test the process-wide editor is a singleton."""
    assert get_editor() is get_editor()


@given(st.integers(min_value=-10**6, max_value=10**6))
def test_story_points_always_in_range(points):
    """Property: stored story points are always within [0, 13]."""
    patch = get_editor().on_field_change(BlockType.USER_STORY, 'points', points)

    assert STORY_POINTS_MIN <= patch['points'] <= STORY_POINTS_MAX
    if STORY_POINTS_MIN <= points <= STORY_POINTS_MAX:
        assert patch['points'] == points


@given(st.text())
def test_story_points_from_any_text_in_range(text):
    """Property: arbitrary number-input text never escapes the range."""
    patch = get_editor().on_field_change(BlockType.USER_STORY, 'points', text)

    assert isinstance(patch['points'], int)
    assert STORY_POINTS_MIN <= patch['points'] <= STORY_POINTS_MAX
