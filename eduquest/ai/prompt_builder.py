"""Provider-neutral request construction for every capability.

Each builder returns a UnifiedLLMRequest; the adapters decide how the schema
is enforced (native response schema vs. JSON mode plus prompt instructions).
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from llm_gateway import TIER_PRO, InlineBlob, UnifiedLLMRequest

from .constants import (
    EXISTING_QUESTION_LIMIT,
    QT_FILL_IN_THE_BLANKS,
    QT_MATCHING,
    QT_MULTIPLE_CHOICE,
    QT_ODD_MAN_OUT,
    QT_SHORT_ANSWER,
    QT_TRUE_FALSE,
    board_for_class,
    board_full_name,
    language_name,
)
from .criteria import AttemptQuestion, PaperCriteria, PaperSection, QuestionCriteria

_STRING = {"type": "string"}
_STRING_LIST = {"type": "array", "items": _STRING}

_STYLE_GUIDELINES = {
    QT_SHORT_ANSWER: (
        "For these Short Answer questions, create a mix of types: some asking for definitions, "
        "some for explanations of processes, and some for comparing/contrasting concepts."
    ),
    QT_MULTIPLE_CHOICE: (
        "For these Multiple Choice questions, ensure the incorrect options (distractors) are plausible "
        "and related to the topic. Avoid trivial or obviously wrong answers."
    ),
    QT_FILL_IN_THE_BLANKS: (
        "For these Fill in the Blanks questions, vary the sentence structure and the position of the blank (`____`)."
    ),
    QT_TRUE_FALSE: (
        "For these True/False questions, formulate statements that require careful consideration of the topic, "
        "not just simple fact recall."
    ),
    QT_ODD_MAN_OUT: (
        "For these 'Odd Man Out' questions, ensure the items in each group share a clear, common characteristic, "
        "and the odd item is distinct for a specific, logical reason."
    ),
    QT_MATCHING: (
        "For these 'Matching' questions, provide two columns. Ensure all items are from the same general topic "
        "to make it challenging, but maintain a single correct set of matches."
    ),
}

_BASE_ANSWER_JSON = 'Each object must have two required fields: "text" and "answer".'

_TYPE_FORMATS = {
    QT_MULTIPLE_CHOICE: (
        "Each question MUST be a multiple-choice question with exactly 4 distinct options, labeled A, B, C, and D.",
        '- The "text" field MUST contain the question followed by the 4 options, formatted like: '
        '"Question text? A) Option 1 B) Option 2 C) Option 3 D) Option 4".\n'
        '- The "answer" field MUST contain ONLY the capital letter of the correct option (e.g., "A", "B", "C", or "D").',
    ),
    QT_FILL_IN_THE_BLANKS: (
        "Each question MUST be a fill-in-the-blanks style question. Use one or more underscores `____` "
        "to represent the blank part.",
        '- "text": The question text with blanks (e.g., "The powerhouse of the cell is the ____.").\n'
        '- "answer": The word or phrase that correctly fills the blank. If there are multiple blanks, '
        "provide the answers in order, separated by a comma.",
    ),
    QT_TRUE_FALSE: (
        'Each question MUST be a statement that can be answered with "True" or "False".',
        '- "text": The statement to be evaluated (e.g., "Mitochondria are found in plant cells.").\n'
        '- "answer": The correct answer, which must be either "True" or "False".',
    ),
    QT_ODD_MAN_OUT: (
        'Each question MUST be an "Odd Man Out" type. It should provide a set of 4-5 items where one does not belong.',
        '- "text": The list of items, typically labeled A, B, C, D (e.g., "A) Lion B) Tiger C) Bear D) Eagle").\n'
        '- "answer": The odd item, followed by a brief justification '
        '(e.g., "D) Eagle, because it is a bird while the others are mammals.").',
    ),
    QT_MATCHING: (
        "Each question MUST be a matching type with two columns, Column A and Column B, each containing 4-5 items.",
        '- "text": The question text, including both columns formatted clearly.\n'
        '- "answer": A string representing the correct pairs (e.g., "1-b, 2-a, ...").',
    ),
}


def style_guideline(question_type: Optional[str]) -> str:
    return _STYLE_GUIDELINES.get(question_type or "", "")


def format_instructions(question_type: Optional[str], with_answer: bool) -> tuple[str, str]:
    """Return (format instruction, JSON output instruction) for a question type."""
    json_instructions = "The response must be a valid JSON array of objects."
    fmt = _TYPE_FORMATS.get(question_type or "")
    if fmt is not None:
        return fmt[0], f"{json_instructions}{_BASE_ANSWER_JSON}\n{fmt[1]}"
    format_text = f'Each question must be of the type: "{question_type or QT_SHORT_ANSWER}".'
    if with_answer:
        return format_text, (
            f'{json_instructions}{_BASE_ANSWER_JSON}\n- "text": The question text.\n'
            '- "answer": A concise and correct answer to the question.'
        )
    return format_text, (
        f'{json_instructions}\nEach object must have one required field: "text". Do not include an "answer" field.'
    )


def question_list_schema(with_answer: bool, *, extra: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    properties: Dict[str, Any] = {
        "text": {
            "type": "string",
            "description": "The full text of the question. For MCQs, this includes the question and 4 options (A, B, C, D).",
        }
    }
    required = ["text"]
    if with_answer:
        properties["answer"] = {
            "type": "string",
            "description": "For MCQs, the capital letter of the correct option. For True/False, 'True' or 'False'.",
        }
        required.append("answer")
    for name, schema in (extra or {}).items():
        properties[name] = schema
        required.append(name)
    return {"type": "array", "items": {"type": "object", "properties": properties, "required": required}}


def _syllabus_instruction(class_num: int, count: int, board_only: bool) -> str:
    if not board_only:
        return (
            "You are an expert in creating biology question papers. "
            f"Your task is to generate {count} unique, high-quality questions based on the criteria below."
        )
    board = board_for_class(class_num)
    return (
        f"You are an expert in creating biology question papers for the {board_full_name(class_num)} curriculum, "
        "specifically for Bengali Medium school students.\n"
        f"Your task is to generate {count} unique, high-quality questions based on the criteria below.\n"
        f"**CRITICAL RULE: The content of all questions and answers MUST strictly adhere to the topics, scope, "
        f"and depth of the official {board} Biology syllabus for the specified class. DO NOT include any content "
        "from other educational boards like CBSE, ICSE, etc.**"
    )


def _existing_block(existing_texts: Sequence[str]) -> str:
    lines = [f"- {t}" for t in list(existing_texts)[:EXISTING_QUESTION_LIMIT]]
    return "\n".join(lines) if lines else "None"


def build_questions_request(criteria: QuestionCriteria, existing_texts: Sequence[str]) -> UnifiedLLMRequest:
    with_answer = criteria.answer_required
    fmt, json_instructions = format_instructions(criteria.question_type, with_answer)
    keyword_line = (
        f"\n- The questions must incorporate or be related to the following keywords: {criteria.keywords}."
        if criteria.keywords
        else ""
    )
    prompt = (
        f"{_syllabus_instruction(criteria.class_num, criteria.count, criteria.board_syllabus_only)}\n\n"
        f"**CRITICAL INSTRUCTION: All generated text, including questions and answers, MUST be in the "
        f"{language_name(criteria.lang)} language.**\n\n"
        f"Criteria:\n- Class: {criteria.class_num}\n- Chapter: \"{criteria.chapter or 'Various Topics'}\"\n"
        f"- Marks for each question: {criteria.marks}\n- Difficulty: {criteria.difficulty}\n\n"
        "Question Style Guidelines:\n- **Variety is key.** Create a mix of questions that test different cognitive "
        "skills: recall, explanation, and analysis or comparison. Use diverse sentence structures.\n"
        f"- {style_guideline(criteria.question_type)}\n\n"
        f"Specific Instructions for this Request:\n- {fmt}{keyword_line}\n\n"
        f"IMPORTANT: Do NOT repeat any of the following questions that have been used before:\n"
        f"{_existing_block(existing_texts)}\n\n"
        f"Output Format:\n{json_instructions.strip()}"
    )
    return UnifiedLLMRequest(
        prompt=prompt,
        json_schema=question_list_schema(with_answer),
        wrap_key="questions",
        use_search=bool(criteria.use_search_grounding),
    )


def build_image_question_request(criteria: QuestionCriteria) -> UnifiedLLMRequest:
    with_answer = criteria.answer_required
    answer_note = "" if with_answer else " This field should be an empty string if an answer is not required."
    prompt = (
        "You are an expert biology teacher creating a question for an exam.\n"
        'Your task is to generate a single JSON object containing "questionText", "answerText", and "imagePrompt".\n\n'
        "**Instructions:**\n"
        '1. **questionText**: Create a unique biology question based on the criteria below. This question MUST refer '
        "to a diagram (e.g., \"Identify the part labeled 'X'...\").\n"
        f"2. **answerText**: Provide a concise, correct answer to the question.{answer_note}\n"
        "3. **imagePrompt**: Write a clear and detailed prompt for an image generation AI describing the exact "
        "diagram needed to answer the question, including any labels.\n"
        f"4. All generated text MUST be in the **{language_name(criteria.lang)}** language.\n\n"
        f"**Criteria for the Question:**\n- Class: {criteria.class_num}\n- Topic: \"{criteria.chapter}\"\n"
        f"- Difficulty: {criteria.difficulty}\n- Marks: {criteria.marks}\n\n"
        "Return ONLY a single valid JSON object."
    )
    properties: Dict[str, Any] = {
        "questionText": {"type": "string", "description": "The biology question that requires a diagram."},
        "imagePrompt": {"type": "string", "description": "A detailed prompt for an AI to generate the necessary diagram."},
    }
    required = ["questionText", "imagePrompt"]
    if with_answer:
        properties["answerText"] = {"type": "string", "description": "The answer to the question."}
        required.append("answerText")
    return UnifiedLLMRequest(prompt=prompt, json_schema={"type": "object", "properties": properties, "required": required})


def build_paper_request(
    criteria: PaperCriteria, sections: Sequence[PaperSection], existing_texts: Sequence[str]
) -> UnifiedLLMRequest:
    total = sum(s.count for s in sections)
    with_answer = bool(criteria.generate_answer) or any(
        t != QT_SHORT_ANSWER for s in sections for t in s.types
    )
    section_lines = []
    for idx, section in enumerate(sections, start=1):
        types = ", ".join(section.types) or QT_SHORT_ANSWER
        section_lines.append(f"{idx}. {section.count} question(s) worth {section.marks} mark(s) each; types: {types}")
    guidelines = [g for g in (style_guideline(t) for s in sections for t in s.types) if g]
    keyword_line = (
        f"\n- The questions must incorporate or be related to the following keywords: {criteria.keywords}."
        if criteria.keywords
        else ""
    )
    prompt = (
        f"{_syllabus_instruction(criteria.class_num, total, criteria.board_syllabus_only)}\n\n"
        f"**CRITICAL INSTRUCTION: All generated text MUST be in the {language_name(criteria.lang)} language.**\n\n"
        f"Criteria:\n- Class: {criteria.class_num}\n- Subject: {criteria.subject}\n"
        f"- Chapters: {', '.join(criteria.chapters) or 'Various Topics'}\n- Difficulty: {criteria.difficulty}\n\n"
        "Paper Structure:\n" + "\n".join(section_lines) + "\n\n"
        "Question Style Guidelines:\n" + "\n".join(f"- {g}" for g in dict.fromkeys(guidelines)) + keyword_line + "\n\n"
        "IMPORTANT: Do NOT repeat any of the following questions that have been used before:\n"
        f"{_existing_block(existing_texts)}\n\n"
        'Output Format:\nThe response must be a valid JSON array of objects. Each object has "text", "chapter" '
        '(one of the chapters above), "marks" (number)' + (' and "answer".' if with_answer else ".")
    )
    schema = question_list_schema(
        with_answer, extra={"chapter": {"type": "string"}, "marks": {"type": "number"}}
    )
    return UnifiedLLMRequest(
        prompt=prompt,
        json_schema=schema,
        wrap_key="questions",
        use_search=bool(criteria.use_search_grounding),
    )


def build_subjects_request(board: str, class_num: int, lang: str) -> UnifiedLLMRequest:
    prompt = (
        "You are an expert on educational syllabi. List all academic subjects for the given curriculum.\n\n"
        f"**Criteria:**\n- Educational Board: {board}\n- Class: {class_num}\n"
        f"- Language for subject names: {language_name(lang)}\n\n"
        'Return ONLY a single valid JSON array of strings, where each string is a subject name. '
        'For example: ["Mathematics", "Science", "History"].'
    )
    return UnifiedLLMRequest(prompt=prompt, json_schema=_STRING_LIST, wrap_key="subjects")


def build_chapters_request(
    board: str, class_num: int, subject: str, lang: str, semester: Optional[str] = None
) -> UnifiedLLMRequest:
    semester_line = f"\n- Semester: {semester}" if semester else ""
    prompt = (
        "You are an expert on educational syllabi. Your task is to list all chapters for a specific subject "
        "and curriculum.\n\n"
        "**CRITICAL INSTRUCTION:** The list of chapters must be strictly for the specified subject ONLY. "
        "Do not include chapters from any other subjects.\n\n"
        f"**Criteria:**\n- Subject: {subject}\n- Educational Board: {board}\n- Class: {class_num}{semester_line}\n"
        f"- Language for chapter names: {language_name(lang)}\n\n"
        "Return ONLY a single valid JSON array of strings, where each string is a chapter name."
    )
    return UnifiedLLMRequest(prompt=prompt, json_schema=_STRING_LIST, wrap_key="chapters")


def build_analysis_request(
    questions: Sequence[AttemptQuestion], answers: Dict[str, str], lang: str
) -> UnifiedLLMRequest:
    detail = "\n".join(
        f"Question: {q.text}\nChapter: {q.chapter}\nCorrect Answer: {q.answer or ''}\n"
        f"Student's Answer: {answers.get(q.id) or 'Not Answered'}\n---"
        for q in questions
    )
    prompt = (
        f"You are a helpful biology tutor. Analyze a student's test performance in {language_name(lang)}.\n"
        f"Test Data:\n{detail}\n"
        'Return ONLY a single valid JSON object with "strengths" (array of strings), '
        '"weaknesses" (array of strings), and "summary" (string).'
    )
    schema = {
        "type": "object",
        "properties": {"strengths": _STRING_LIST, "weaknesses": _STRING_LIST, "summary": _STRING},
        "required": ["strengths", "weaknesses", "summary"],
    }
    return UnifiedLLMRequest(prompt=prompt, json_schema=schema)


def build_flashcards_request(chapter: str, class_num: int, count: int, lang: str) -> UnifiedLLMRequest:
    prompt = (
        f'Generate {count} flashcards for Class {class_num} on "{chapter}" in {language_name(lang)}. '
        'Output a valid JSON array of objects, each with a "question" and "answer" key.'
    )
    schema = {
        "type": "array",
        "items": {
            "type": "object",
            "properties": {"question": _STRING, "answer": _STRING},
            "required": ["question", "answer"],
        },
    }
    return UnifiedLLMRequest(prompt=prompt, json_schema=schema, wrap_key="flashcards")


def build_practice_sets_request(weaknesses: Sequence[str], class_num: int, lang: str) -> UnifiedLLMRequest:
    bullet_list = "\n- ".join(weaknesses)
    prompt = (
        f"You are an expert biology tutor. A Class {class_num} student has these weaknesses: \n- {bullet_list}\n"
        f"Based *only* on these, suggest up to 3 specific practice topics in {language_name(lang)}. "
        'Return a valid JSON array of objects. Each object must have "chapter", "topic", and "reason" keys.'
    )
    schema = {
        "type": "array",
        "items": {
            "type": "object",
            "properties": {"chapter": _STRING, "topic": _STRING, "reason": _STRING},
            "required": ["chapter", "topic", "reason"],
        },
    }
    return UnifiedLLMRequest(prompt=prompt, json_schema=schema, wrap_key="suggestions", model_tier=TIER_PRO)


def build_diagram_suggestions_request(chapter: str, class_num: int, lang: str) -> UnifiedLLMRequest:
    prompt = (
        f'List the 3 most important diagrams for Class {class_num} studying "{chapter}" in {language_name(lang)}. '
        "For each, provide its name, description, and an image generation prompt. "
        'Return a valid JSON array of objects with "name", "description", and "image_prompt" keys.'
    )
    schema = {
        "type": "array",
        "items": {
            "type": "object",
            "properties": {"name": _STRING, "description": _STRING, "image_prompt": _STRING},
            "required": ["name", "description", "image_prompt"],
        },
    }
    return UnifiedLLMRequest(prompt=prompt, json_schema=schema, wrap_key="diagrams", model_tier=TIER_PRO)


def build_diagram_grade_request(reference: InlineBlob, drawing: InlineBlob, lang: str) -> UnifiedLLMRequest:
    prompt = (
        f"You are an expert biology teacher grading a student's diagram in {language_name(lang)}. "
        "The first image is the reference, the second is the student's. Evaluate accuracy, labeling, and neatness. "
        'Return a JSON object with "score" (number out of 10), "strengths" (array of strings), '
        '"areasForImprovement" (array of strings), and "feedback" (string).'
    )
    schema = {
        "type": "object",
        "properties": {
            "score": {"type": "number"},
            "strengths": _STRING_LIST,
            "areasForImprovement": _STRING_LIST,
            "feedback": _STRING,
        },
        "required": ["score", "strengths", "areasForImprovement", "feedback"],
    }
    return UnifiedLLMRequest(prompt=prompt, images=[reference, drawing], json_schema=schema)


def build_doubt_request(class_num: int, lang: str, text: Optional[str], image: Optional[InlineBlob]) -> UnifiedLLMRequest:
    prompt = (
        f"You are a friendly biology tutor for a Class {class_num} student. A student has a doubt in "
        f"{language_name(lang)}. Explain clearly and concisely; if it's a question, guide them step-by-step. "
        f"Use Markdown. Student's doubt: {text or 'Please analyze the attached image.'}"
    )
    return UnifiedLLMRequest(prompt=prompt, images=[image] if image else [])


def build_teacher_doubt_request(
    class_num: int, lang: str, text: Optional[str], image: Optional[InlineBlob]
) -> UnifiedLLMRequest:
    prompt = (
        f"You are an expert biology teaching assistant for a Class {class_num} teacher. A teacher has a query in "
        f"{language_name(lang)}. Provide a clear, detailed, and pedagogically sound explanation suitable for a "
        f"teacher. Use Markdown for formatting. Teacher's query: {text or 'Please analyze the attached image.'}"
    )
    return UnifiedLLMRequest(prompt=prompt, images=[image] if image else [])


def build_study_guide_request(chapter: str, class_num: int, topic: str, lang: str) -> UnifiedLLMRequest:
    prompt = (
        f'Create a concise study guide for a Class {class_num} student on the "{topic}" from the chapter '
        f'"{chapter}" in {language_name(lang)}. Format it well with Markdown.'
    )
    return UnifiedLLMRequest(prompt=prompt)


_EXTRACTED_QUESTIONS_SCHEMA = {
    "type": "array",
    "items": {
        "type": "object",
        "properties": {"text": _STRING, "marks": {"type": "number"}},
        "required": ["text"],
    },
}


def build_image_extraction_request(image: InlineBlob, class_num: int, lang: str) -> UnifiedLLMRequest:
    prompt = (
        f"Extract all questions from the image of an exam paper for Class {class_num} in {language_name(lang)}. "
        'Return a valid JSON array of objects, each with "text" (string) and optional "marks" (number).'
    )
    return UnifiedLLMRequest(
        prompt=prompt, images=[image], json_schema=_EXTRACTED_QUESTIONS_SCHEMA, wrap_key="questions"
    )


def build_pdf_extraction_request(document: InlineBlob, class_num: int, lang: str) -> UnifiedLLMRequest:
    prompt = (
        "You are an expert at analyzing PDF documents. Extract all distinct questions from the provided PDF of an "
        f"exam paper. The paper is for Class {class_num} and is in the {language_name(lang)} language. "
        "The PDF may have multiple pages.\n"
        "- For each question, identify its full text.\n"
        "- If marks are mentioned near a question, extract them.\n"
        "- If the PDF is not a question paper, is password-protected, or is unreadable, return an empty array.\n"
        '- Return the result as a valid JSON array of objects. Each object must have a "text" (string) and may '
        'have an optional "marks" (number) field.'
    )
    return UnifiedLLMRequest(
        prompt=prompt,
        documents=[document],
        json_schema=_EXTRACTED_QUESTIONS_SCHEMA,
        wrap_key="questions",
        model_tier=TIER_PRO,
    )


def build_text_extraction_request(text: str, class_num: int, lang: str) -> UnifiedLLMRequest:
    prompt = (
        "You are an expert at analyzing text. Extract all distinct questions from the provided text from an exam "
        f"paper. The paper is for Class {class_num} and is in the {language_name(lang)} language.\n"
        "- For each question, identify its full text.\n"
        "- If marks are mentioned near a question, extract them.\n"
        '- Return the result as a valid JSON array of objects. Each object must have a "text" (string) and may '
        'have an optional "marks" (number) field.\n\n'
        f"Here is the text to analyze:\n---\n{text}\n---\n"
    )
    return UnifiedLLMRequest(prompt=prompt, json_schema=_EXTRACTED_QUESTIONS_SCHEMA, wrap_key="questions")


def image_prompt_for_diagram(suggestion: Dict[str, Any]) -> str:
    return str(suggestion.get("image_prompt") or suggestion.get("name") or "").strip()


def as_string_list(values: Any) -> List[str]:
    if not isinstance(values, list):
        return []
    return [str(v).strip() for v in values if isinstance(v, str) and str(v).strip()]
