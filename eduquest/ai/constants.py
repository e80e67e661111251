from __future__ import annotations

from typing import Dict, List

LANGUAGE_NAMES: Dict[str, str] = {
    "en": "English",
    "bn": "Bengali",
    "hi": "Hindi",
    "kn": "Kannada",
    # older clients stored Kannada as "ka"
    "ka": "Kannada",
}

QT_SHORT_ANSWER = "Short Answer"
QT_MULTIPLE_CHOICE = "Multiple Choice"
QT_FILL_IN_THE_BLANKS = "Fill in the Blanks"
QT_TRUE_FALSE = "True/False"
QT_IMAGE_BASED = "Image-based"
QT_ODD_MAN_OUT = "Odd Man Out"
QT_MATCHING = "Matching"

QUESTION_TYPES: List[str] = [
    QT_SHORT_ANSWER,
    QT_MULTIPLE_CHOICE,
    QT_FILL_IN_THE_BLANKS,
    QT_TRUE_FALSE,
    QT_IMAGE_BASED,
    QT_ODD_MAN_OUT,
    QT_MATCHING,
]

# Objective types always carry an answer key.
ANSWER_REQUIRED_TYPES = frozenset(
    {QT_MULTIPLE_CHOICE, QT_FILL_IN_THE_BLANKS, QT_TRUE_FALSE, QT_ODD_MAN_OUT, QT_MATCHING}
)

DIFFICULTIES: List[str] = ["Easy", "Moderate", "Hard"]

EXISTING_QUESTION_LIMIT = 50

DEFAULT_SUBJECTS: List[str] = [
    "Biology",
    "Life Science",
    "Mathematics",
    "Physics",
    "Chemistry",
    "History",
    "Geography",
]

DEFAULT_CHAPTERS: Dict[int, List[str]] = {
    7: [
        "Nutrition in Plants and Animals",
        "Fibre and Fabric",
        "Weather, Climate, and Adaptation",
        "Respiration in Organisms",
        "Transportation in Living Beings",
        "Reproduction in Plants",
        "Forests: Our Lifeline",
    ],
    8: [
        "Crop Production and Management",
        "Microorganisms: Friend and Foe",
        "Conservation of Plants and Animals",
        "Cell: Structure and Functions",
        "Reproduction in Animals",
        "Reaching the Age of Adolescence",
    ],
    9: [
        "Life and its Diversity",
        "Levels of Organization of Life",
        "Physiological Processes of Life",
        "Biology and Human Welfare",
        "Environment and its Resources",
    ],
    10: [
        "Control and Coordination in living organisms",
        "Continuity of life",
        "Heredity and some common genetic diseases",
        "Evolution and adaptation",
        "Environment, its resources and their conservation",
    ],
    11: [
        "The Living World",
        "Biological Classification",
        "Plant Kingdom",
        "Animal Kingdom",
        "Structural Organisation in Animals and Plants",
        "Cell: The Unit of Life",
        "Biomolecules",
        "Cell Cycle and Cell Division",
        "Transport in Plants",
        "Mineral Nutrition",
        "Photosynthesis in Higher Plants",
        "Respiration in Plants",
        "Plant Growth and Development",
        "Digestion and Absorption",
        "Breathing and Exchange of Gases",
        "Body Fluids and Circulation",
        "Excretory Products and their Elimination",
        "Locomotion and Movement",
        "Neural Control and Coordination",
        "Chemical Coordination and Integration",
    ],
    12: [
        "Reproduction in Organisms",
        "Sexual Reproduction in Flowering Plants",
        "Human Reproduction",
        "Reproductive Health",
        "Principles of Inheritance and Variation",
        "Molecular Basis of Inheritance",
        "Evolution",
        "Human Health and Disease",
        "Strategies for Enhancement in Food Production",
        "Microbes in Human Welfare",
        "Biotechnology: Principles and Processes",
        "Biotechnology and its Applications",
        "Organisms and Populations",
        "Ecosystem",
        "Biodiversity and Conservation",
        "Environmental Issues",
    ],
}


def language_name(lang: str) -> str:
    return LANGUAGE_NAMES.get(str(lang or "").strip().lower(), "English")


def board_for_class(class_num: int) -> str:
    return "WBCHSE" if int(class_num) >= 11 else "WBBSE"


def board_full_name(class_num: int) -> str:
    if int(class_num) >= 11:
        return "West Bengal Council of Higher Secondary Education (WBCHSE)"
    return "West Bengal Board of Secondary Education (WBBSE)"
