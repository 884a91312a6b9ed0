"""
Korean-language quality checks for generated question text.

- Informal register (해요체) where exam questions need 합니다체
- Konglish loanwords that have a native exam-style equivalent
- Double spacing
"""

import re
from typing import List

from generation.schemas import QualityIssue

INFORMAL_PATTERNS = [
    (re.compile(r"해요(?!\S)"), "합니다"),
    (re.compile(r"이에요(?!\S)"), "입니다"),
    (re.compile(r"거예요(?!\S)"), "것입니다"),
    (re.compile(r"아요(?!\S)"), "습니다"),
    (re.compile(r"~ㄴ데(?!\S)"), "~습니다만"),
    (re.compile(r"~네요(?!\S)"), "~습니다"),
]

KONGLISH_MAP = {
    "체크": "확인",
    "케어": "관리",
    "매니지": "관리",
    "컨트롤": "제어",
    "핸들": "처리",
    "리스트": "목록",
    "셋팅": "설정",
    "컨펌": "확인",
    "메뉴얼": "설명서",
    "스케줄": "일정",
}

MULTIPLE_SPACES = re.compile(r"\s{2,}")

# Penalty per issue type for calculate_korean_quality_score
ISSUE_PENALTY = {"informal": 2.0, "konglish": 1.0, "grammar": 0.5}


def validate_korean_quality(text: str) -> List[QualityIssue]:
    """Return every quality issue found in text (one entry per occurrence)."""
    issues: List[QualityIssue] = []

    for pattern, formal in INFORMAL_PATTERNS:
        for match in pattern.finditer(text):
            issues.append(QualityIssue(
                type="informal",
                position=f"Index {match.start()}",
                original=match.group(0),
                suggestion=formal,
            ))

    for konglish, korean in KONGLISH_MAP.items():
        if konglish in text:
            issues.append(QualityIssue(
                type="konglish",
                position=f'Contains "{konglish}"',
                original=konglish,
                suggestion=korean,
            ))

    if MULTIPLE_SPACES.search(text):
        issues.append(QualityIssue(
            type="grammar",
            position="Multiple spaces detected",
            original="연속된 공백",
            suggestion="단일 공백 사용",
        ))

    return issues


def count_distinct_issues(issues: List[QualityIssue]) -> int:
    """Repeated occurrences of the same problem count once."""
    return len({(issue.type, issue.original) for issue in issues})


def calculate_korean_quality_score(text: str) -> float:
    """10-point score: informal −2, konglish −1, spacing −0.5 per issue, floored at 0."""
    score = 10.0
    for issue in validate_korean_quality(text):
        score -= ISSUE_PENALTY[issue.type]
    return max(0.0, score)
