from typing import List, Tuple


class ConceptStrengthAnalyzer:
    """Extract weak and strong concepts for a learner within one course."""

    def analyze(self, user_id: str, course_id: str) -> Tuple[List[str], List[str]]:
        raise NotImplementedError


class NoConceptAnalyzer(ConceptStrengthAnalyzer):
    """Default analyzer: responses carry no concept tags yet, so nothing is reported."""

    def analyze(self, user_id: str, course_id: str) -> Tuple[List[str], List[str]]:
        return [], []
