"""
Submission grading
Objective questions (mcq, true_false): exact match at submit time
Subjective questions (short_answer, long_answer): scored by the quiz owner
"""
import logging
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


class GradingService:
    """
    Service for grading quiz submissions

    Strategy:
    - MCQ: Exact match; multi-answer questions ignore order
    - True/False: Case-insensitive match on "true"/"false"
    - Short/Long answer: left at zero for the owner to grade
    """

    def grade_answers(
        self,
        questions: List[Dict[str, Any]],
        buffer: Dict[str, Dict[str, Any]],
    ) -> Tuple[List[Dict[str, Any]], float, float]:
        """
        Turn a session's answer buffer into a graded answer list

        Args:
            questions: Quiz questions in authored order
            buffer: {question_id: {"answer", "time_spent", "saves"}}

        Returns:
            Tuple of (answers, total_score, max_score)
        """
        answers = []
        total_score = 0.0
        max_score = 0.0

        for question in questions:
            q_id = question["id"]
            q_type = question.get("type")
            points = float(question.get("points", 1))
            entry = buffer.get(q_id) or {}
            student_answer = entry.get("answer")

            if q_type == "mcq":
                score, feedback, is_correct = self._grade_mcq(question, student_answer)
            elif q_type == "true_false":
                score, feedback, is_correct = self._grade_true_false(question, student_answer)
            else:
                score, feedback, is_correct = 0.0, None, None

            weighted_score = score * points
            total_score += weighted_score
            max_score += points

            answers.append({
                "question_id": q_id,
                "student_answer": student_answer,
                "score": weighted_score,
                "feedback": feedback,
                "is_correct": is_correct,
                "time_spent": int(entry.get("time_spent", 0)),
            })

        logger.info(f"Auto-graded {len(answers)} answers: {total_score:.2f}/{max_score:.2f}")
        return answers, total_score, max_score

    @staticmethod
    def _as_answer_set(value: Any) -> Optional[frozenset]:
        if value is None:
            return None
        values = value if isinstance(value, list) else [value]
        return frozenset(str(v).strip() for v in values)

    def _grade_mcq(self, question: Dict[str, Any], student_answer: Any) -> Tuple[float, str, bool]:
        given = self._as_answer_set(student_answer)
        if not given:
            return 0.0, "No answer provided", False

        if given == self._as_answer_set(question.get("correct_answer")):
            return 1.0, "Correct!", True
        return 0.0, "Incorrect", False

    def _grade_true_false(self, question: Dict[str, Any], student_answer: Any) -> Tuple[float, str, bool]:
        if student_answer is None or isinstance(student_answer, list):
            return 0.0, "No answer provided", False

        expected = str(question.get("correct_answer", "")).strip().lower()
        if student_answer.strip().lower() == expected:
            return 1.0, "Correct!", True
        return 0.0, "Incorrect", False

    def behavior_metrics(
        self,
        questions: List[Dict[str, Any]],
        buffer: Dict[str, Dict[str, Any]],
        answer_changes: int,
        client_metrics: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Derive revisit/skip/timing statistics from the answer buffer"""
        question_ids = [q["id"] for q in questions]
        answered = [buffer[q_id] for q_id in question_ids if q_id in buffer]
        times = [int(entry.get("time_spent", 0)) for entry in answered]

        metrics = {
            "questions_revisited": sum(1 for entry in answered if entry.get("saves", 1) > 1),
            "questions_skipped": len(question_ids) - len(answered),
            "questions_changed_answer": answer_changes,
            "average_time_per_question": round(sum(times) / len(times), 2) if times else 0.0,
            "longest_time_on_question": max(times) if times else 0,
            "shortest_time_on_question": min(times) if times else 0,
        }
        if client_metrics:
            metrics["client"] = client_metrics
        return metrics

    def apply_manual_grades(
        self,
        answers: List[Dict[str, Any]],
        graded_answers: List[Dict[str, Any]],
    ) -> List[Dict[str, Any]]:
        """
        Merge owner-supplied scores into stored answers by question id

        Answers without a matching grade are returned unchanged.
        """
        grades = {item["question_id"]: item for item in graded_answers}
        merged = []

        for answer in answers:
            grade = grades.get(answer.get("question_id"))
            if grade is None:
                merged.append(answer)
                continue

            updated = {**answer, "score": float(grade["score"])}
            if grade.get("feedback") is not None:
                updated["feedback"] = grade["feedback"]
            if grade.get("is_correct") is not None:
                updated["is_correct"] = grade["is_correct"]
            merged.append(updated)

        unmatched = set(grades) - {a.get("question_id") for a in answers}
        if unmatched:
            logger.warning(f"Ignoring grades for unknown questions: {sorted(unmatched)}")

        return merged


def percentage_of(total_score: float, max_score: float) -> float:
    return round(total_score / max_score * 100, 2) if max_score > 0 else 0.0


# Global instance
grading_service = GradingService()
