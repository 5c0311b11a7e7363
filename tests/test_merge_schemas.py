"""
Tests for parsing generated replies and merging them with regex entities.
"""

import pytest

from query_understanding.exceptions import ResponseParseError
from query_understanding.hybrid import GeneratedQuery, blend_confidence, merge_entities, parse_generated
from query_understanding.hybrid.merge import extract_json_object, union_terms
from query_understanding.hybrid.prompts import (
    FEW_SHOT_EXAMPLES,
    INTENT_FOCUS,
    build_messages,
    build_user_prompt,
)
from query_understanding.models import ExtractedEntities, Intent


class TestJsonExtraction:
    """Tests for extract_json_object()"""

    def test_surrounding_text(self):
        text = 'Here is the JSON:\n{"intent": "find_peers"}\nHope this helps!'
        assert extract_json_object(text) == '{"intent": "find_peers"}'

    def test_nested_braces(self):
        text = '```json\n{"entities": {"location": "Chennai"}}\n```'
        assert extract_json_object(text) == '{"entities": {"location": "Chennai"}}'

    @pytest.mark.parametrize("text", ["", "no json here", "} backwards {"])
    def test_no_object(self, text):
        with pytest.raises(ResponseParseError):
            extract_json_object(text)


class TestParseGenerated:
    """Tests for parse_generated() and the reply schema"""

    def test_nested_entities(self):
        parsed = parse_generated(
            '{"intent": "find_business", "confidence": 0.8, '
            '"entities": {"skills": ["web development"], "location": "Chennai"}}'
        )
        assert parsed.parsed_intent == Intent.FIND_BUSINESS
        assert parsed.confidence == 0.8
        assert parsed.entities.to_entities() == ExtractedEntities(
            skills=("web development",), location="Chennai",
        )

    def test_implausible_years_dropped(self):
        parsed = GeneratedQuery.model_validate({"graduation_year": [1800, 2005, 2095, "'99"]})
        assert parsed.entities.to_entities().graduation_year == (1999, 2005)

    def test_camel_case_and_alternate_keys(self):
        parsed = parse_generated(
            '{"intent": "find_alumni_business", "entities": {"graduationYear": "2005", '
            '"city": "Coimbatore", "department": "Mechanical Engineering", '
            '"organizationName": "Zoho Corp", "personName": "Priya"}}'
        )
        entities = parsed.entities.to_entities()
        assert entities.graduation_year == (2005,)
        assert entities.location == "Coimbatore"
        assert entities.branch == "Mechanical Engineering"
        assert entities.organization_name == "Zoho Corp"
        assert entities.name == "Priya"

    def test_flat_entities_lifted(self):
        parsed = parse_generated('{"intent": "find_peers", "years": [2005, "06"], "skill": "java"}')
        entities = parsed.entities.to_entities()
        assert entities.graduation_year == (2005, 2006)
        assert entities.skills == ("java",)

    def test_scalar_or_list_text(self):
        parsed = GeneratedQuery.model_validate({"entities": {"location": ["Chennai", "Madurai"]}})
        assert parsed.entities.location == "Chennai"

    @pytest.mark.parametrize("value", [None, "", "null", "N/A", "unknown"])
    def test_placeholder_text_dropped(self, value):
        parsed = GeneratedQuery.model_validate({"entities": {"name": value}})
        assert parsed.entities.name is None

    def test_bad_years_skipped(self):
        parsed = GeneratedQuery.model_validate({"entities": {"graduation_year": ["soon", "19955", "'98"]}})
        assert parsed.entities.graduation_year == [1998]

    @pytest.mark.parametrize("value,expected", [("0.9", 0.9), (1.7, 1.0), (-1, 0.0), ("high", None)])
    def test_confidence_coerced(self, value, expected):
        assert GeneratedQuery.model_validate({"confidence": value}).confidence == expected

    def test_unknown_intent(self):
        assert GeneratedQuery.model_validate({"intent": "find_everything"}).parsed_intent is None

    def test_invalid_json(self):
        with pytest.raises(ResponseParseError):
            parse_generated('{"intent": "find_peers",}')


class TestMerge:
    """Field precedence between regex and generated entities"""

    REGEX = ExtractedEntities(
        graduation_year=(1995,),
        location="Chennai",
        branch="Electronics and Communication Engineering",
        skills=("web development",),
        services=("catering",),
        name="Rahul",
        organization_name="Zoho",
    )
    GENERATED = ExtractedEntities(
        graduation_year=(1996,),
        location="Madras City",
        branch="ECE",
        skills=("Python", "Web Development"),
        services=("event management",),
        name="Rahul Kumar",
        organization_name="Zoho Corporation",
    )

    def test_regex_wins_for_structured_fields(self):
        merged = merge_entities(self.REGEX, self.GENERATED)
        assert merged.graduation_year == (1995,)
        assert merged.location == "Chennai"
        assert merged.branch == "Electronics and Communication Engineering"

    def test_generated_wins_for_names(self):
        merged = merge_entities(self.REGEX, self.GENERATED)
        assert merged.name == "Rahul Kumar"
        assert merged.organization_name == "Zoho Corporation"

    def test_terms_unioned_generated_first(self):
        merged = merge_entities(self.REGEX, self.GENERATED)
        assert merged.skills == ("Python", "Web Development")
        assert merged.services == ("event management", "catering")

    def test_missing_values_filled_from_other_side(self):
        merged = merge_entities(ExtractedEntities(), self.GENERATED)
        assert merged.graduation_year == (1996,)
        assert merged.location == "Madras City"

        merged = merge_entities(self.REGEX, ExtractedEntities())
        assert merged == self.REGEX

    def test_union_terms_case_insensitive(self):
        assert union_terms(["SEO", "java"], ["seo", "Java ", "python"]) == ("SEO", "java", "python")

    def test_blend(self):
        assert blend_confidence(0.6, 0.9) == pytest.approx(0.78)
        assert blend_confidence(0.5, 0.5, 0.5, 0.5) == 0.5


class TestPrompts:
    """Tests for prompt construction"""

    def test_focus_for_every_intent(self):
        assert set(INTENT_FOCUS) == set(Intent)

    @pytest.mark.parametrize("intent", list(Intent))
    def test_system_prompt_has_focus_and_examples(self, intent):
        messages = build_messages("ECE people from 2005 batch", intent)
        system = messages[0].content
        assert INTENT_FOCUS[intent] in system
        assert FEW_SHOT_EXAMPLES[0]["query"] in system

    def test_user_prompt_without_context(self):
        assert build_user_prompt(" ECE 2005 batch ") == "Query: ECE 2005 batch\nJSON:"

    def test_blank_context_ignored(self):
        assert "Context" not in build_user_prompt("ECE 2005 batch", context="  ")
