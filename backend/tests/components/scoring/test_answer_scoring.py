"""Tests for per-kind answer comparison and score folding."""

import pytest

from assessment_engine.components.questions.schemas import (
    QUESTION_TYPES,
    BooleanQuestion,
    CodingQuestion,
    EssayQuestion,
    FileUploadQuestion,
    FillInBlanksQuestion,
    MultiSelectQuestion,
    ShortTextQuestion,
    SingleChoiceQuestion,
)
from assessment_engine.components.scoring.normalizer import (
    collect_raw_answer,
    comparator_for,
    grade_answer,
    normalize_answer_value,
    resolve_option_text,
    short_text_matches,
)
from assessment_engine.components.scoring.schemas import Verdict
from assessment_engine.components.scoring.service import score, score_percent

OPTIONS = ["Paris", "London", "Berlin", "Madrid"]


def _single(canonical, points=1, qid="q1"):
    return SingleChoiceQuestion(id=qid, prompt="Capital of France?", options=OPTIONS, canonical_answer=canonical, points=points)


class TestNormalizeAnswerValue:
    def test_blank_values_collapse_to_none(self):
        assert normalize_answer_value("") is None
        assert normalize_answer_value("   ") is None
        assert normalize_answer_value([]) is None
        assert normalize_answer_value(["", "  "]) is None
        assert normalize_answer_value(None) is None

    def test_lists_keep_non_blank_items_as_text(self):
        assert normalize_answer_value(["A", "", 3]) == ["A", "3"]

    def test_text_is_kept_verbatim(self):
        assert normalize_answer_value(" Paris ") == " Paris "


class TestSingleChoice:
    @pytest.mark.parametrize("canonical", [0, "0", "Paris", "paris", " PARIS "])
    def test_index_and_text_encodings_agree(self, canonical):
        question = _single(canonical)
        assert grade_answer(question, {"q1": "Paris"}) == Verdict.CORRECT
        assert grade_answer(question, {"q1": "London"}) == Verdict.INCORRECT

    def test_comparison_is_trimmed_and_case_insensitive(self):
        assert grade_answer(_single(2), {"q1": "  berlin "}) == Verdict.CORRECT

    def test_out_of_range_index_is_treated_as_literal_text(self):
        assert resolve_option_text(OPTIONS, 9) == "9"
        assert grade_answer(_single(9), {"q1": "Paris"}) == Verdict.INCORRECT

    def test_missing_answer_is_unanswered(self):
        assert grade_answer(_single(0), {}) == Verdict.UNANSWERED
        assert grade_answer(_single(0), {"q1": ""}) == Verdict.UNANSWERED

    def test_boolean_accepts_index_text_and_bool_canonical(self):
        for canonical in (0, "True", True):
            question = BooleanQuestion(id="b1", canonical_answer=canonical)
            assert question.options == ["True", "False"]
            assert grade_answer(question, {"b1": "True"}) == Verdict.CORRECT
            assert grade_answer(question, {"b1": "False"}) == Verdict.INCORRECT


class TestMultiSelect:
    def _question(self, canonical):
        return MultiSelectQuestion(id="m1", options=OPTIONS, canonical_answer=canonical)

    @pytest.mark.parametrize("canonical", ["0, 2", [0, 2], ["Paris", "Berlin"], ["0", "2"]])
    def test_exact_set_is_correct(self, canonical):
        question = self._question(canonical)
        assert grade_answer(question, {"m1": ["Berlin", "Paris"]}) == Verdict.CORRECT

    def test_superset_and_subset_are_incorrect(self):
        question = self._question("0,2")
        assert grade_answer(question, {"m1": ["Paris", "Berlin", "London"]}) == Verdict.INCORRECT
        assert grade_answer(question, {"m1": ["Paris"]}) == Verdict.INCORRECT

    def test_json_encoded_selection_from_storage(self):
        question = self._question("0,2")
        assert grade_answer(question, {"m1": '["Paris", "Berlin"]'}) == Verdict.CORRECT

    def test_malformed_stored_selection_is_incorrect_not_an_error(self):
        question = self._question("0,2")
        assert grade_answer(question, {"m1": "[not json"}) == Verdict.INCORRECT


class TestShortText:
    def test_word_overlap_scenario(self):
        assert short_text_matches("when the effect executes", "when the effect runs") is True
        assert short_text_matches("yesterday", "when the effect runs") is False

    def test_containment_in_either_direction(self):
        assert short_text_matches("It is Photosynthesis.", "photosynthesis") is True
        assert short_text_matches("photo", "photosynthesis") is True

    def test_half_of_canonical_words_is_enough(self):
        assert short_text_matches("alpha beta", "alpha beta gamma delta") is True
        assert short_text_matches("alpha zeta", "alpha beta gamma delta") is False

    def test_question_without_canonical_never_matches(self):
        question = ShortTextQuestion(id="s1")
        assert grade_answer(question, {"s1": "anything"}) == Verdict.INCORRECT


class TestFillInBlanks:
    def _question(self):
        return FillInBlanksQuestion(id="f1", canonical_answer=["red", "blue"], blank_count=2)

    def test_blanks_are_collected_from_sub_keys(self):
        question = self._question()
        answers = {"f1_0": "Red", "f1_1": "BLUE"}
        assert collect_raw_answer(question, answers) == ["Red", "BLUE"]
        assert grade_answer(question, answers) == Verdict.CORRECT

    def test_position_is_not_compared(self):
        assert grade_answer(self._question(), {"f1_0": "blue", "f1_1": "red"}) == Verdict.CORRECT

    def test_count_must_match(self):
        assert grade_answer(self._question(), {"f1_0": "red"}) == Verdict.INCORRECT

    def test_every_canonical_entry_must_appear(self):
        assert grade_answer(self._question(), {"f1_0": "red", "f1_1": "red"}) == Verdict.INCORRECT


class TestComparatorRegistry:
    def test_every_question_type_has_an_entry(self):
        samples = {
            SingleChoiceQuestion: SingleChoiceQuestion(id="a", options=["x"]),
            MultiSelectQuestion: MultiSelectQuestion(id="b", options=["x"]),
            BooleanQuestion: BooleanQuestion(id="c"),
            ShortTextQuestion: ShortTextQuestion(id="d"),
            EssayQuestion: EssayQuestion(id="e"),
            CodingQuestion: CodingQuestion(id="f"),
            FileUploadQuestion: FileUploadQuestion(id="g"),
            FillInBlanksQuestion: FillInBlanksQuestion(id="h"),
        }
        assert set(samples) == set(QUESTION_TYPES)
        for question_type, question in samples.items():
            comparator = comparator_for(question)
            if question.requires_manual_review:
                assert comparator is None, question_type
            else:
                assert callable(comparator), question_type

    @pytest.mark.parametrize("question", [EssayQuestion(id="e"), CodingQuestion(id="c"), FileUploadQuestion(id="u")])
    def test_ungraded_kinds(self, question):
        assert grade_answer(question, {question.id: "some work"}) == Verdict.UNGRADED


class TestScorePercent:
    def test_half_up_rounding(self):
        assert score_percent(1, 8) == 13  # 12.5
        assert score_percent(1, 3) == 33
        assert score_percent(2, 3) == 67

    def test_zero_total_points(self):
        assert score_percent(0, 0) == 0


class TestScore:
    def test_no_answers_scores_zero(self):
        questions = [_single(0, qid="q1"), ShortTextQuestion(id="q2", canonical_answer="x")]
        result = score(questions, {})
        assert result.score_percent == 0
        assert result.earned_points == 0
        assert result.total_points == 2

    def test_empty_question_set_scores_zero(self):
        result = score([], {})
        assert result.score_percent == 0
        assert result.total_points == 0

    def test_ungraded_points_count_toward_total_only(self):
        questions = [_single(0, points=4, qid="q1"), EssayQuestion(id="q2", points=6)]
        result = score(questions, {"q1": "Paris", "q2": "A long essay."})
        assert result.earned_points == 4
        assert result.total_points == 10
        assert result.score_percent == 40
        assert result.pending_review == ["q2"]
        assert result.verdicts == {"q1": Verdict.CORRECT, "q2": Verdict.UNGRADED}

    def test_unanswered_ungraded_item_is_not_pending_review(self):
        result = score([EssayQuestion(id="q2")], {})
        assert result.pending_review == []
