import sys
import types
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import name_inference
from finder_models import METHOD_AI, METHOD_FALLBACK, METHOD_PATTERN
from name_inference import AIEnhancedInferencer, NameInferencer, build_inferencer, infer_name


@pytest.mark.parametrize(
    "email,name,confidence",
    [
        ("john.doe@company.com", "John Doe", 1.0),
        ("sarah.johnson@tech.io", "Sarah Johnson", 1.0),
        ("jane_smith@startup.io", "Jane Smith", 0.95),
        ("jdoe@business.com", "Jdoe", 0.70),
        ("j.doe@business.com", "J. Doe", 0.70),
        ("johnsmith@gmail.com", "John Smith", 0.60),
        ("ceo@company.com", "Ceo", 0.70),
    ],
)
def test_pattern_rules(email, name, confidence):
    result = infer_name(email)
    assert result.name == name
    assert result.confidence == pytest.approx(confidence)
    assert result.method == METHOD_PATTERN
    assert result.ai_enhanced is False


def test_unmatched_local_part_falls_back():
    result = infer_name("john.doe99@company.com")
    assert result.name == "John Doe99"
    assert result.confidence == pytest.approx(0.30)
    assert result.method == METHOD_FALLBACK


def test_common_first_name_with_dot_is_confident():
    for first in ("michael", "emily", "thomas"):
        result = infer_name(f"{first}.brown@gmail.com")
        assert result.method == METHOD_PATTERN
        assert result.confidence >= 0.80


@pytest.mark.parametrize(
    "email",
    ["a@b.co", "x_y@z.io", "1234@firm.io", "a.b.c@firm.io", "---@firm.io", "", "verylongname" * 4 + "@x.io"],
)
def test_confidence_is_always_bounded(email):
    result = infer_name(email)
    assert 0.0 <= result.confidence <= 1.0


def test_concatenated_name_needs_a_known_first_name():
    # "kdoe" has no common first-name prefix, so it stays a single word
    assert infer_name("kdoe@firm.io").name == "Kdoe"
    assert infer_name("marysmith@firm.io").name == "Mary Smith"


def _collaborator(answer=None, error=None, enabled=True):
    calls = []

    def infer_name_from_email(email):
        calls.append(email)
        if error is not None:
            raise error
        return answer

    collab = types.SimpleNamespace(
        is_enabled=lambda: enabled,
        infer_name_from_email=infer_name_from_email,
        batch_infer=lambda emails: [],
    )
    return collab, calls


@pytest.mark.asyncio
async def test_ai_answer_adopted_when_more_confident():
    collab, calls = _collaborator({"name": "John Doe", "confidence": 0.92, "reasoning": "j + doe"})
    inferencer = AIEnhancedInferencer(NameInferencer(), collab)

    result = await inferencer.ainfer("jdoe@business.com")

    assert calls == ["jdoe@business.com"]
    assert result.name == "John Doe"
    assert result.method == METHOD_AI
    assert result.ai_enhanced is True
    assert result.reasoning == "j + doe"
    assert result.fallback.name == "Jdoe"
    assert result.to_dict()["fallback"]["confidence"] == pytest.approx(0.70)


@pytest.mark.asyncio
async def test_ai_answer_ignored_when_not_more_confident():
    collab, _ = _collaborator({"name": "J Doe", "confidence": 0.70})
    inferencer = AIEnhancedInferencer(NameInferencer(), collab)

    result = await inferencer.ainfer("jdoe@business.com")

    assert result.name == "Jdoe"
    assert result.method == METHOD_PATTERN


@pytest.mark.asyncio
async def test_confident_pattern_skips_collaborator():
    collab, calls = _collaborator({"name": "Nope", "confidence": 0.99})
    inferencer = AIEnhancedInferencer(NameInferencer(), collab)

    result = await inferencer.ainfer("john.doe@company.com")

    assert calls == []
    assert result.name == "John Doe"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "answer,error",
    [
        (None, RuntimeError("quota exceeded")),
        ({"name": "", "confidence": 0.99}, None),
        ({"name": "John Doe", "confidence": "high"}, None),
        (["John Doe"], None),
        (None, None),
    ],
)
async def test_collaborator_trouble_degrades_to_pattern(answer, error):
    collab, _ = _collaborator(answer, error)
    inferencer = AIEnhancedInferencer(NameInferencer(), collab)

    result = await inferencer.ainfer("jdoe@business.com")

    assert result.name == "Jdoe"
    assert result.method == METHOD_PATTERN


@pytest.mark.asyncio
async def test_ai_confidence_is_clamped():
    collab, _ = _collaborator({"name": "John Doe", "confidence": 7})
    result = await AIEnhancedInferencer(NameInferencer(), collab).ainfer("jdoe@business.com")
    assert result.confidence == 1.0


@pytest.mark.asyncio
async def test_infer_many_batches_and_preserves_order():
    collab, calls = _collaborator({"name": "Someone Else", "confidence": 0.95})
    inferencer = AIEnhancedInferencer(NameInferencer(), collab, batch_size=2, batch_pause=0.01)
    emails = ["jdoe@a.io", "john.doe@a.io", "kdoe@a.io", "ceo@a.io", "mary.smith@a.io"]

    named = await inferencer.infer_many(emails)

    assert [email for email, _ in named] == emails
    # only the weak guesses reach the collaborator
    assert sorted(calls) == sorted(["jdoe@a.io", "kdoe@a.io", "ceo@a.io"])
    by_email = dict(named)
    assert by_email["john.doe@a.io"].name == "John Doe"
    assert by_email["jdoe@a.io"].method == METHOD_AI


@pytest.mark.asyncio
async def test_disabled_collaborator_uses_pattern_path():
    collab, calls = _collaborator({"name": "X", "confidence": 1.0}, enabled=False)
    inferencer = AIEnhancedInferencer(NameInferencer(), collab)

    named = await inferencer.infer_many(["jdoe@a.io"])

    assert calls == []
    assert named[0][1].name == "Jdoe"


def test_build_inferencer_selects_strategy():
    collab, _ = _collaborator()
    assert isinstance(build_inferencer(False, collab), NameInferencer)
    assert isinstance(build_inferencer(True, None), NameInferencer)
    assert isinstance(build_inferencer(True, collab), AIEnhancedInferencer)


def test_rule_table_is_replaceable():
    rules = [r for r in name_inference.DEFAULT_RULES if r.name != "single"]
    result = NameInferencer(rules).infer("jdoe@business.com")
    assert result.method == METHOD_FALLBACK
