import datetime
from typing import Iterable, List, Optional, Tuple

from azure.search.documents.indexes.models import (
    EntityRecognitionSkill,
    EntityRecognitionSkillVersion,
    ImageAnalysisSkill,
    InputFieldMappingEntry,
    KeyPhraseExtractionSkill,
    LanguageDetectionSkill,
    MergeSkill,
    OcrSkill,
    OutputFieldMappingEntry,
    SentimentSkill,
    SentimentSkillVersion,
    WebApiSkill,
)

from kbquery.config import Settings

SKILL_TYPES = {
    "ocr": OcrSkill,
    "merge": MergeSkill,
    "sentiment": SentimentSkill,
    "language": LanguageDetectionSkill,
    "keyphrase": KeyPhraseExtractionSkill,
    "entity": EntityRecognitionSkill,
    "image": ImageAnalysisSkill,
    "webapi": WebApiSkill,
}

IMAGES = "/document/normalized_images/*"

Inputs = Iterable[Tuple[str, str]]
Outputs = Iterable[Tuple[str, Optional[str]]]


def build_skill(kind: str, context: str, inputs: Inputs, outputs: Outputs, **params):
    """Assemble one enrichment step.

    ``inputs`` binds skill parameters to document paths, ``outputs`` binds
    skill results to target names (``None`` keeps the result name). Paths
    are passed through untouched; the service reports bad ones when the
    indexer runs.
    """
    try:
        skill_type = SKILL_TYPES[kind]
    except KeyError:
        raise ValueError(f"Unknown skill kind {kind!r}") from None

    outputs = [(result, target or result) for result, target in outputs]
    targets = [target for _, target in outputs]
    duplicates = sorted({t for t in targets if targets.count(t) > 1})
    if duplicates:
        raise ValueError(f"Duplicate output targets in {kind} skill: {duplicates}")

    if kind == "webapi":
        params.setdefault("http_method", "POST")
        params.setdefault("http_headers", {})

    return skill_type(
        context=context,
        inputs=[
            InputFieldMappingEntry(name=name, source=source) for name, source in inputs
        ],
        outputs=[
            OutputFieldMappingEntry(name=result, target_name=target)
            for result, target in outputs
        ],
        **params,
    )


def function_headers(key: Optional[str]) -> dict:
    return {"x-functions-key": key} if key else {}


def create_skills(settings: Settings) -> List:
    ocr = build_skill(
        "ocr",
        IMAGES,
        [("image", IMAGES)],
        [("text", "text")],
        name="ocr",
        description="Extract text (plain and structured) from image",
        default_language_code="en",
        should_detect_orientation=True,
    )
    image_analysis = build_skill(
        "image",
        IMAGES,
        [("image", IMAGES)],
        [("tags", "tags"), ("description", "description")],
        name="image-analysis",
        description="performs image analysis",
        visual_features=["tags", "description"],
    )
    merge = build_skill(
        "merge",
        "/document",
        [
            ("text", "/document/content"),
            ("itemsToInsert", f"{IMAGES}/text"),
            ("offsets", f"{IMAGES}/contentOffset"),
        ],
        [("mergedText", "merged_text")],
        name="merge",
        description="Insert the text of each image at its location in the content",
        insert_pre_tag=" ",
        insert_post_tag=" ",
    )
    language = build_skill(
        "language",
        "/document",
        [("text", "/document/content")],
        [("languageCode", "languageCode")],
        name="language-detection",
        description="Detect the language used in the document",
    )
    sentiment = build_skill(
        "sentiment",
        "/document",
        [("text", "/document/content")],
        [("sentiment", "sentiment")],
        name="sentiment",
        description="Score the sentiment",
        default_language_code="en",
        skill_version=SentimentSkillVersion.V3,
    )
    key_phrases = build_skill(
        "keyphrase",
        "/document",
        [("text", "/document/content")],
        [("keyPhrases", "keyPhrases")],
        name="key-phrases",
        description="Extract the key phrases",
    )
    entities = build_skill(
        "entity",
        "/document/content",
        [("text", "/document/content")],
        [
            ("urls", None),
            ("persons", None),
            ("emails", None),
            ("locations", None),
            ("dateTimes", None),
        ],
        name="entities",
        description="Recognize Entities",
        categories=["URL", "Person", "Email", "Location", "DateTime"],
        default_language_code="en",
        skill_version=EntityRecognitionSkillVersion.V3,
    )
    hello_world = build_skill(
        "webapi",
        "/document",
        [("name", "/document/file_name")],
        [("greeting", "greeting")],
        name="hello-world",
        description="Hello World custom skill",
        uri=settings.hello_world_skill_url,
        http_headers=function_headers(settings.hello_world_skill_key),
        batch_size=1,
    )
    top_words = build_skill(
        "webapi",
        "/document",
        [
            ("text", "/document/merged_text"),
            ("languageCode", "/document/languageCode"),
        ],
        [("words", "top_10_words")],
        name="top-ten-words",
        description="Top Words skill",
        uri=settings.top_words_skill_url,
        http_headers=function_headers(settings.top_words_skill_key),
        timeout=datetime.timedelta(seconds=215),
        batch_size=1,
    )
    return [
        ocr,
        image_analysis,
        merge,
        language,
        sentiment,
        key_phrases,
        entities,
        hello_world,
        top_words,
    ]
