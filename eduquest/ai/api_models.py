from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class QuestionGenerationRequest(BaseModel):
    class_num: int
    chapter: str
    marks: int = 1
    difficulty: str = "Moderate"
    count: int = Field(default=5, ge=1, le=50)
    question_type: Optional[str] = None
    keywords: str = ""
    generate_answer: bool = False
    board_syllabus_only: bool = False
    lang: str = "en"
    use_search_grounding: bool = False
    subject: Optional[str] = None
    existing_questions: List[str] = Field(default_factory=list)


class DistributionRowModel(BaseModel):
    count: int = Field(ge=0)
    marks: int = Field(ge=0)


class PaperGenerationRequest(BaseModel):
    class_num: int
    subject: str
    chapters: List[str] = Field(min_length=1)
    difficulty: str = "Moderate"
    distribution: List[DistributionRowModel]
    question_types: List[str] = Field(default_factory=list)
    keywords: str = ""
    generate_answer: bool = False
    board_syllabus_only: bool = False
    lang: str = "en"
    use_search_grounding: bool = False
    existing_questions: List[str] = Field(default_factory=list)


class AttemptQuestionModel(BaseModel):
    id: str
    text: str
    chapter: str = ""
    answer: Optional[str] = None


class StudentAnswerModel(BaseModel):
    question_id: str
    answer: str = ""


class TestAnalysisRequest(BaseModel):
    questions: List[AttemptQuestionModel]
    student_answers: List[StudentAnswerModel] = Field(default_factory=list)
    lang: str = "en"


class FlashcardsRequest(BaseModel):
    chapter: str
    class_num: int
    count: int = Field(default=10, ge=1, le=50)
    lang: str = "en"


class PracticeSetsRequest(BaseModel):
    attempts: List[Dict[str, Any]] = Field(default_factory=list)
    class_num: int
    lang: str = "en"


class DiagramSuggestionRequest(BaseModel):
    chapter: str
    class_num: int
    lang: str = "en"
    render_images: bool = False


class DiagramGradeRequest(BaseModel):
    reference_image_prompt: str
    drawing_data_url: str
    lang: str = "en"


class DoubtRequest(BaseModel):
    class_num: int
    lang: str = "en"
    text: Optional[str] = None
    image_data_url: Optional[str] = None


class StudyGuideRequest(BaseModel):
    chapter: str
    class_num: int
    topic: str
    lang: str = "en"


class ImageExtractionRequest(BaseModel):
    image_data_url: str
    class_num: int
    lang: str = "en"


class PdfExtractionRequest(BaseModel):
    pdf_data_url: str
    class_num: int
    lang: str = "en"


class TextExtractionRequest(BaseModel):
    text: str = Field(min_length=1)
    class_num: int
    lang: str = "en"
