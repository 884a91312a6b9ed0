"""
Prompt templates for every LLM stage of the problem-generation pipeline.

Stage prompts:
  - EXTRACTION_PROMPT  → concepts from long material (full pipeline)
  - DESIGN_PROMPT      → one design per problem (medium / full)
  - GENERATION_PROMPT  → final problems from designs (medium / full)
  - domain prompts     → domain-specific instructions (all pipelines)

Every generation-stage response is a JSON object {"problems": [...]}.
"""

import json
from typing import Callable, Dict, List, Optional

from generation.schemas import ConceptRecord, ProblemDesign


# ─── System prompts ────────────────────────────────────────────────────────────

BASE_SYSTEM_PROMPT = """You are an expert exam question writer for a Korean learning app.
You write practice problems that feel like real certification / school exam items.
All question text, options and explanations are written in formal Korean (합니다체),
except technical terms, code and English-language test items.
Output ONLY valid JSON. No markdown fences, no commentary."""

COMMON_RULES = """COMMON RULES FOR EVERY PROBLEM:
1. question_type is one of: "multiple_choice", "multiple_select", "fill_blank", "essay"
2. multiple_choice: EXACTLY 4 options, each a full, meaningful phrase (never bare "A", "B", "C", "D")
3. fill_blank / essay: "options" MUST be null
4. fill_blank: mark the blank with _____ and list accepted spellings/synonyms in "alternatives"
5. essay: set "max_length" (characters) proportional to the expected answer
6. correct_answer must be unambiguous; for multiple_choice it is the full text of the correct option
7. explanation states why the answer is correct and includes the answer itself
8. Attach a self_critique to EVERY problem:
   {"quality_score": <0-10>, "should_regenerate": <true|false>, "issues": ["..."]}
   Be honest: score below 7 if the answer is ambiguous or distractors are weak.

OUTPUT FORMAT:
{
  "problems": [
    {
      "question": "<question text>",
      "question_type": "<multiple_choice|multiple_select|fill_blank|essay>",
      "options": ["<option 1>", "<option 2>", "<option 3>", "<option 4>"] or null,
      "correct_answer": "<answer>",
      "alternatives": ["<accepted alternative>", ...],
      "explanation": "<explanation>",
      "difficulty": "<easy|medium|hard>",
      "max_length": <int or null>,
      "source_excerpt": "<supporting excerpt from the material, if any>",
      "self_critique": {"quality_score": <0-10>, "should_regenerate": <bool>, "issues": []}
    }
  ]
}"""

SAMPLE_GENERATION_RULES = """ADDITIONAL REQUIREMENTS FOR EXAMPLE GENERATION:
- Generate ONLY example problems with quality_score >= 8
- Include comprehensive alternatives array
- Make problems representative of {tech}
- Ensure real exam-like quality"""


# ─── Domain prompts ────────────────────────────────────────────────────────────

DOMAIN_GUIDES: Dict[str, str] = {
    "코딩": """DOMAIN: Programming / software engineering.
- Prefer questions about behaviour, output prediction, and trade-offs over trivia
- Code snippets go inside the question text using ``` fences
- Distractors should be common misconceptions (hoisting, closures, async ordering, etc.)""",
    "영어": """DOMAIN: English (TOEIC style).
- Part 5 grammar/vocabulary items: one sentence with a blank, 4 word/phrase options
- Part 7 reading items: a short passage followed by a comprehension question
- Question stems and options stay in English; explanations are in Korean""",
    "간호사": """DOMAIN: Nursing (NCLEX-RN / clinical nursing).
- Scenario-based clinical judgement questions with a patient context
- Prioritisation and safety questions use the nursing process
- Distractors are plausible but unsafe or lower-priority actions""",
    "자격증": """DOMAIN: Professional certification (정보보안, PMP, ...).
- Mirror the official exam blueprint and terminology
- Scenario questions that test application, not memorisation of definitions""",
}

DEFAULT_DOMAIN_GUIDE = """DOMAIN: General study material.
- Cover the most important concepts first
- Mix recall and application questions"""

DOMAIN_PROMPT = """{domain_guide}

USER REQUEST:
{user_request}

REFERENCE EXAMPLES (match their quality and style; do NOT copy them):
{examples}"""


def get_domain_prompt_function(category: str) -> Callable[[str, str], str]:
    """Return a builder (user_request, formatted_examples) → domain prompt for a category."""
    guide = DOMAIN_GUIDES.get(category, DEFAULT_DOMAIN_GUIDE)

    def build(user_request: str, examples: str) -> str:
        return DOMAIN_PROMPT.format(
            domain_guide=guide,
            user_request=user_request,
            examples=examples or "(none)",
        )

    return build


# ─── Type mix ──────────────────────────────────────────────────────────────────

def type_mix_instructions(fill_blank_ratio: int, subjective_type: str) -> str:
    """Tell the model how many problems should be subjective vs multiple choice."""
    subjective = {
        "fill_blank": "fill_blank",
        "essay": "essay",
    }.get(subjective_type, "fill_blank or essay")
    return (
        f"QUESTION TYPE MIX: about {fill_blank_ratio}% {subjective} problems, "
        f"the rest multiple_choice."
    )


# ─── Stage 1: Concept extraction ───────────────────────────────────────────────

EXTRACTION_PROMPT = """Extract the key testable concepts from the learning material below.

MATERIAL:
---
{material}
---

OUTPUT FORMAT — respond with ONLY a valid JSON object:
{{
  "concepts": [
    {{"concept": "<concept label>", "context": "<short supporting excerpt>", "importance": <1-10>}}
  ]
}}

RULES:
1. Only concepts that actually appear in the material
2. Order by importance, most important first
3. Keep each context under 200 characters
4. At most 20 concepts"""


def get_extraction_prompt(material: str) -> str:
    return EXTRACTION_PROMPT.format(material=material)


# ─── Stage 3: Problem design ───────────────────────────────────────────────────

DESIGN_PROMPT = """Design {count} {difficulty} practice problems from the concepts below.

CONCEPTS:
{concepts}

{type_mix}

OUTPUT FORMAT — respond with ONLY a valid JSON object:
{{
  "designs": [
    {{
      "concept": "<target concept>",
      "question_type": "<multiple_choice|multiple_select|fill_blank|essay>",
      "correct_answer_logic": "<why the correct answer is correct>",
      "distractor_logic": "<what misconceptions the wrong options target, or null>",
      "difficulty_rationale": "<why this is {difficulty}>"
    }}
  ]
}}

RULES:
1. Exactly {count} designs; reuse a concept from a different angle if there are fewer concepts
2. Spread designs across concepts, most important concepts first
3. Do NOT write the final question text yet"""


def get_design_prompt(
    concepts: List[ConceptRecord],
    difficulty: str,
    count: int,
    type_mix: str = "",
) -> str:
    concept_json = json.dumps([c.model_dump() for c in concepts], ensure_ascii=False, indent=2)
    return DESIGN_PROMPT.format(
        count=count,
        difficulty=difficulty,
        concepts=concept_json,
        type_mix=type_mix,
    )


# ─── Stage 4: Generation from designs ──────────────────────────────────────────

GENERATION_PROMPT = """Write the final problems following these designs exactly (one problem per design).

DESIGNS:
{designs}

{domain_prompt}
{extra}"""


def get_generation_prompt(designs: List[ProblemDesign], domain_prompt: str, extra: Optional[str] = "") -> str:
    design_json = json.dumps([d.model_dump() for d in designs], ensure_ascii=False, indent=2)
    return GENERATION_PROMPT.format(designs=design_json, domain_prompt=domain_prompt, extra=extra or "")


# ─── Sample bootstrap ──────────────────────────────────────────────────────────

SAMPLE_REQUEST = """Generate {count} high-quality example problems specifically about {tech}.
These will be used as few-shot examples for future problem generation.
Focus on exam-grade quality and real-world scenarios."""


def get_sample_request(tech: str, count: int) -> str:
    return SAMPLE_REQUEST.format(tech=tech, count=count)


# ─── Complexity (ai_only) ──────────────────────────────────────────────────────

COMPLEXITY_GUIDES: Dict[str, str] = {
    "simple": "",
    "advanced": """COMPLEXITY: advanced.
- Prefer multi-step scenarios that combine two or more concepts
- Questions should require application or analysis, not recall
- Distractors must be wrong only for a subtle, explainable reason""",
}


def complexity_instructions(complexity: Optional[str]) -> str:
    return COMPLEXITY_GUIDES.get(complexity or "simple", "")
