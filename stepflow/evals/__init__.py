from .scorer import EvalScorer, Grade, grade_output

__all__ = ["EvalScorer", "Grade", "grade_output"]
