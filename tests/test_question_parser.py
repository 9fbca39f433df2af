# =============================================================================
# TESTS - Completion parsing and question validation
# =============================================================================

import json

from conftest import make_raw_question

from groundschool.services.question_parser import extract_raw_questions, validate_questions

TEXT_COMPLETION = """### Question 1: What do chloroplasts contain?
A. Mitochondria
B. Chlorophyll
C. Ribosomes only
D. Nothing
Correct answer: B
Explanation: Chlorophyll is the pigment inside chloroplasts.

### Question 2: Where does the Calvin cycle run?
A) Thylakoid membrane
B) Nucleus
C) Stroma
D) Cell wall
Correct Answer: C
Explanation: The Calvin cycle runs in the stroma.
"""


class TestExtractRawQuestions:

    def test_json_array(self):
        completion = json.dumps([make_raw_question(1), make_raw_question(2)])

        raw = extract_raw_questions(completion)

        assert [item["text"] for item in raw] == ["Question 1?", "Question 2?"]

    def test_fenced_json_object(self):
        completion = "```json\n" + json.dumps({"questions": [make_raw_question(1)]}) + "\n```"

        assert len(extract_raw_questions(completion)) == 1

    def test_lettered_text_layout(self):
        raw = extract_raw_questions(TEXT_COMPLETION)

        assert len(raw) == 2
        assert raw[0]["text"] == "What do chloroplasts contain?"
        assert raw[0]["correct_option_id"] == "B"
        assert [option["id"] for option in raw[1]["options"]] == ["A", "B", "C", "D"]
        assert raw[1]["correct_option_id"] == "C"
        assert raw[1]["explanation"] == "The Calvin cycle runs in the stroma."

    def test_empty_completion(self):
        assert extract_raw_questions("   ") == []


class TestValidateQuestions:

    def test_valid_questions_pass(self):
        valid, rejected = validate_questions([make_raw_question(1), make_raw_question(2, correct="d")])

        assert rejected == 0
        assert valid[1].correct_option_id == "D"

    def test_malformed_questions_dropped(self):
        missing_text = {**make_raw_question(2), "text": ""}
        one_option = {**make_raw_question(3), "options": [{"id": "A", "text": "Only"}]}
        bad_correct = make_raw_question(4, correct="E")
        duplicate_ids = {**make_raw_question(5), "options": [{"id": "A", "text": "x"}, {"id": "A", "text": "y"}]}

        valid, rejected = validate_questions([
            make_raw_question(1), missing_text, one_option, bad_correct, duplicate_ids,
        ])

        assert [question.text for question in valid] == ["Question 1?"]
        assert rejected == 4

    def test_alternate_field_spellings(self):
        raw = {
            "question": "Which pigment absorbs light?",
            "options": ["Chlorophyll", "Keratin", "Melanin"],
            "correct_answer": 0,
        }

        valid, rejected = validate_questions([raw])

        assert rejected == 0
        assert valid[0].text == "Which pigment absorbs light?"
        assert valid[0].correct_option_id == "A"
        assert [option.id for option in valid[0].options] == ["A", "B", "C"]
