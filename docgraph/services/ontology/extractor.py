"""
Ontology extraction.

Asks a Groq chat model (JSON mode) for the entities and relationships in a
document. Long documents are sampled from the head, middle and tail so that
late mentions are not systematically lost.
"""
import json
import time
from typing import Any, Dict, List, Optional

from groq import Groq

from docgraph.core.config import settings
from docgraph.services.ontology.models import RawEntity, RawOntology, RawRelationship
from docgraph.utils.exceptions import OntologyServiceError
from docgraph.utils.logging import get_logger
from docgraph.utils.metrics import ontology_extraction_duration_seconds

logger = get_logger(__name__)

SAMPLE_SEPARATOR = "\n...\n"
DEFAULT_ENTITY_TYPE = "CONCEPT"


def sample_text(text: str, max_chars: int) -> str:
    """
    Cap ``text`` at ``max_chars`` by joining equal head, middle and tail slices.

    Text within the cap is returned unchanged.
    """
    if len(text) <= max_chars:
        return text

    part = max(1, (max_chars - 2 * len(SAMPLE_SEPARATOR)) // 3)
    middle_start = (len(text) - part) // 2
    head = text[:part]
    middle = text[middle_start:middle_start + part]
    tail = text[-part:]
    return SAMPLE_SEPARATOR.join([head, middle, tail])


class OntologyExtractor:
    """Extracts a raw ontology from text with a Groq chat completion."""

    SYSTEM_PROMPT = (
        "You are an expert knowledge engineer. Extract the important entities and the "
        "relationships between them from the user's document. Respond with a JSON object "
        "of the form {\"entities\": [{\"name\": str, \"type\": str, \"description\": str, "
        "\"properties\": object}], \"relationships\": [{\"from\": str, \"to\": str, "
        "\"type\": str, \"properties\": object}]}. Entity types should be one of PERSON, "
        "ORGANIZATION, CONCEPT, LOCATION, EVENT, TECHNOLOGY, PRODUCT. Relationship endpoints "
        "must use entity names exactly as listed in \"entities\". Relationship types are "
        "UPPER_SNAKE_CASE verbs such as WORKS_FOR or PART_OF."
    )

    def __init__(
        self,
        client: Optional[Groq] = None,
        model: Optional[str] = None,
        max_chars: Optional[int] = None,
    ):
        self.model = model or settings.groq_ontology_model or settings.groq_model
        self.max_chars = max_chars or settings.ontology_max_chars
        if client is not None:
            self.client = client
        elif settings.groq_api_key:
            self.client = Groq(api_key=settings.groq_api_key)
        else:
            self.client = None
            logger.warning(
                "ontology_extractor_config_missing",
                config_key="GROQ_API_KEY",
                message="Ontology extraction will fail until GROQ_API_KEY is set.",
            )

    def extract(self, text: str) -> RawOntology:
        """
        Extract entities and relationships from ``text``.

        Raises:
            OntologyServiceError: If the model call fails or returns unusable JSON
        """
        if self.client is None or not self.model:
            raise OntologyServiceError(
                "Ontology extraction is not configured (GROQ_API_KEY / GROQ_MODEL)",
                {},
            )

        sample = sample_text(text, self.max_chars)
        logger.info(
            "ontology_extraction_start",
            text_length=len(text),
            sample_length=len(sample),
            sampled=len(sample) != len(text),
        )

        start_time = time.time()
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": self.SYSTEM_PROMPT},
                    {"role": "user", "content": sample},
                ],
                temperature=settings.ontology_temperature,
                response_format={"type": "json_object"},
            )
            content = response.choices[0].message.content
        except Exception as e:
            raise OntologyServiceError(
                f"Ontology extraction request failed: {str(e)}",
                {"model": self.model, "error": str(e)},
            ) from e
        finally:
            ontology_extraction_duration_seconds.observe(time.time() - start_time)

        ontology = parse_ontology_response(content)
        logger.info(
            "ontology_extraction_complete",
            entities=len(ontology.entities),
            relationships=len(ontology.relationships),
        )
        return ontology


def parse_ontology_response(content: Optional[str]) -> RawOntology:
    """Parse the model's JSON reply, skipping malformed items."""
    try:
        data = json.loads(content or "")
    except (TypeError, ValueError) as e:
        raise OntologyServiceError(
            f"Ontology response is not valid JSON: {str(e)}",
            {"content_preview": (content or "")[:200]},
        ) from e
    if not isinstance(data, dict):
        raise OntologyServiceError("Ontology response is not a JSON object", {})

    entities: List[RawEntity] = []
    for item in _as_list(data.get("entities")):
        name = item.get("name")
        if not isinstance(name, str) or not name.strip():
            continue
        entities.append(
            RawEntity(
                name=name.strip(),
                type=str(item.get("type") or DEFAULT_ENTITY_TYPE).upper(),
                description=str(item.get("description") or ""),
                properties=_as_dict(item.get("properties")),
            )
        )

    relationships: List[RawRelationship] = []
    for item in _as_list(data.get("relationships")):
        source = item.get("from", item.get("source"))
        target = item.get("to", item.get("target"))
        if not isinstance(source, str) or not isinstance(target, str):
            continue
        relationships.append(
            RawRelationship(
                source=source,
                target=target,
                type=str(item.get("type") or ""),
                properties=_as_dict(item.get("properties")),
            )
        )

    return RawOntology(entities=tuple(entities), relationships=tuple(relationships))


def _as_list(value: Any) -> List[Dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


def _as_dict(value: Any) -> Dict[str, Any]:
    return dict(value) if isinstance(value, dict) else {}
