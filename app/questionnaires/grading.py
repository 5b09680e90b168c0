"""
Answer validation and scoring against a frozen question set

Pure functions over plain documents (questions as stored in
questionnaire_versions, answers as {"question_id", "value"} dicts) so the
submission transaction can call them without touching the database.
"""

from typing import Any, Dict, List, Optional

from app.core.errors import validation_error
from app.questionnaires.questionnaire_models import Purpose, QuestionType


def is_answered(value: Any) -> bool:
    """None, blank strings and empty lists count as no answer"""
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, list):
        return len(value) > 0
    return True


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _option_ids(question: dict) -> set:
    return {opt["id"] for opt in question.get("options") or []}


def _check_value(question: dict, value: Any) -> None:
    """Raise 422 when value has the wrong shape for the question type"""
    qid = question["id"]
    qtype = question["type"]

    if qtype == QuestionType.SINGLE:
        if not isinstance(value, str):
            raise validation_error("Single choice answer must be an option id", question_id=qid)
        if value not in _option_ids(question):
            raise validation_error(f"Invalid option ID: {value}", question_id=qid)

    elif qtype == QuestionType.MULTI:
        if not isinstance(value, list):
            raise validation_error("Multiple choice answer must be a list of option ids", question_id=qid)
        valid = _option_ids(question)
        for option_id in value:
            if not isinstance(option_id, str) or option_id not in valid:
                raise validation_error(f"Invalid option ID: {option_id}", question_id=qid)
        if len(set(value)) != len(value):
            raise validation_error("Multiple choice answer repeats an option", question_id=qid)

    elif qtype == QuestionType.SCALE:
        if not _is_number(value):
            raise validation_error("Scale answer must be a number", question_id=qid)
        scale = question.get("scale") or {}
        if value < scale.get("min") or value > scale.get("max"):
            raise validation_error(
                f"Scale answer must be between {scale.get('min')} and {scale.get('max')}",
                question_id=qid,
            )

    elif qtype == QuestionType.TEXT:
        if not isinstance(value, str):
            raise validation_error("Text answer must be a string", question_id=qid)


def validate_answers(questions: List[dict], answers: List[dict]) -> Dict[str, Any]:
    """
    Check answers against the frozen questions

    Returns:
        dict: question_id -> value for every answered question

    Raises:
        422: unknown or duplicate question ids, missing required answers,
             option ids outside the frozen options, out of range scale values,
             wrong value shapes
    """
    by_id = {q["id"]: q for q in questions}
    answered: Dict[str, Any] = {}

    for answer in answers:
        qid = answer.get("question_id")
        if qid not in by_id:
            raise validation_error(f"Unknown question: {qid}", question_id=qid)
        if qid in answered:
            raise validation_error(f"Duplicate answer for question: {qid}", question_id=qid)

        value = answer.get("value")
        if is_answered(value):
            _check_value(by_id[qid], value)
        answered[qid] = value

    for question in questions:
        if question.get("required") and not is_answered(answered.get(question["id"])):
            raise validation_error(
                f"Answer required for question: {question['id']}",
                question_id=question["id"],
            )

    return {qid: value for qid, value in answered.items() if is_answered(value)}


def _normalize(value: Any) -> str:
    # 5.0 and "5" must compare equal for scale answers
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip().lower()


def is_correct(question: dict, value: Any) -> bool:
    correct = question.get("correct") or []
    qtype = question["type"]

    if qtype == QuestionType.SINGLE:
        return isinstance(value, str) and value in correct

    if qtype == QuestionType.MULTI:
        return isinstance(value, list) and set(value) == set(correct)

    accepted = {_normalize(c) for c in correct}
    return _normalize(value) in accepted


def score_answers(purpose: str, questions: List[dict], answered: Dict[str, Any]) -> Optional[dict]:
    """
    Score validated answers

    Only questions carrying a non-empty correct list are scored. Surveys give
    full points for any answer to a scored question, quizzes and assessments
    require a match. Returns None when nothing is scored.
    """
    earned = 0
    total = 0

    for question in questions:
        if not question.get("correct"):
            continue

        points = question.get("points") or 1
        total += points

        if question["id"] not in answered:
            continue

        value = answered[question["id"]]
        if purpose == Purpose.SURVEY or is_correct(question, value):
            earned += points

    if total == 0:
        return None

    return {"earned": earned, "total": total}


def strip_correct(questions: List[dict]) -> List[dict]:
    """Questions as shown to a learner"""
    return [
        {key: value for key, value in question.items() if key != "correct"}
        for question in questions
    ]
