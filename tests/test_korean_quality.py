from generation.korean_quality import (
    calculate_korean_quality_score,
    count_distinct_issues,
    validate_korean_quality,
)


def test_formal_text_has_no_issues():
    assert validate_korean_quality("다음 중 클로저에 대한 설명으로 옳은 것은 무엇입니까?") == []


def test_informal_register_detected():
    issues = validate_korean_quality("이 함수는 값을 반환해요 그래서 결과가 좋아요")
    originals = {i.original for i in issues if i.type == "informal"}
    assert "해요" in originals
    assert "아요" in originals


def test_konglish_detected_with_suggestion():
    issues = validate_korean_quality("입력값을 체크한 뒤 스케줄에 추가합니다.")
    konglish = {i.original: i.suggestion for i in issues if i.type == "konglish"}
    assert konglish == {"체크": "확인", "스케줄": "일정"}


def test_double_space_detected():
    issues = validate_korean_quality("두 칸  띄어쓰기")
    assert [i.type for i in issues] == ["grammar"]


def test_repeated_issue_counts_once():
    issues = validate_korean_quality("체크 체크 체크를 해요 또 해요")
    assert count_distinct_issues(issues) == 2


def test_quality_score():
    assert calculate_korean_quality_score("정상적인 문장입니다.") == 10.0
    assert calculate_korean_quality_score("값을 체크해요  다시") == 10.0 - 2.0 - 1.0 - 0.5
    assert calculate_korean_quality_score("해요 " * 10) == 0.0
