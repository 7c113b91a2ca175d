"""Search intent classification with an LLM.

One chat completion turns a shopper's free-text query into the catalog
sections to search, the category ids per section and expanded keywords.
Any failure (no API key, network, model error, malformed JSON) falls back
to searching everything with the query's own words, so callers never see
an exception from this stage.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any

import openai
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

SEARCH_TYPES = ("productos", "servicios", "empleos")

PRODUCT_CATEGORIES = (
    "alimentos_bebidas",
    "panaderia_reposteria",
    "ropa_indumentaria",
    "accesorios_complementos",
    "hogar_decoracion",
    "electronica_tecnologia",
    "libros_revistas",
    "juguetes_juegos",
    "deportes_fitness",
    "salud_bienestar",
    "belleza_cosmetica",
    "mascotas",
    "jardin_exterior",
    "herramientas",
    "vehiculos_accesorios",
    "arte_manualidades",
    "otros",
)

SERVICE_CATEGORIES = (
    "belleza_y_bienestar",
    "salud_y_medicina",
    "educacion_y_capacitacion",
    "tecnologia_e_informatica",
    "hogar_y_mantenimiento",
    "automotriz",
    "eventos_y_celebraciones",
    "deportes_y_fitness",
    "mascotas",
    "consultoria_y_negocios",
    "marketing_y_publicidad",
    "diseño_y_creatividad",
    "fotografia_y_video",
    "musica_y_entretenimiento",
    "gastronomia",
    "jardineria_y_paisajismo",
    "limpieza",
    "transporte_y_logistica",
    "servicios_legales",
    "servicios_financieros",
    "otros",
)

JOB_CATEGORIES = (
    "administracion",
    "tecnologia",
    "salud",
    "belleza",
    "educacion",
    "gastronomia",
    "construccion",
    "hogar",
    "transporte",
    "ventas",
    "marketing",
    "eventos",
    "automotriz",
    "legal",
    "seguridad",
    "mascotas",
    "otro",
)

SYSTEM_PROMPT = (
    "Eres un asistente experto en analizar búsquedas de usuarios en un marketplace "
    "argentino. Siempre respondes con JSON válido sin formato markdown."
)

PROMPT_TEMPLATE = """
Eres un asistente que ayuda a entender qué busca un usuario en un marketplace local argentino.

El usuario buscó: "{query}"

Analiza la búsqueda y responde SOLO con un JSON (sin markdown, sin explicaciones) con esta estructura:
{{
  "intencion": "descripción breve de qué busca",
  "tipo_busqueda": ["productos", "servicios", "empleos"],
  "categorias_productos": ["categoría1", "categoría2"],
  "categorias_servicios": ["categoría1", "categoría2"],
  "categorias_empleos": ["categoría1", "categoría2"],
  "palabras_clave": ["palabra1", "palabra2", "palabra3"],
  "es_para_regalar": true/false,
  "genero_objetivo": "masculino/femenino/neutro/cualquiera"
}}

CATEGORÍAS DISPONIBLES (usar EXACTAMENTE estos IDs):

**PRODUCTOS:**
{productos}

**SERVICIOS:**
{servicios}

**EMPLEOS:**
{empleos}

INSTRUCCIONES IMPORTANTES:
- Usa los IDs exactos de las categorías listadas arriba
- Si el usuario busca "vino", "cerveza", "whisky" → productos: ["alimentos_bebidas"]
- Si busca "regalos para mamá" → productos: ["belleza_cosmetica", "accesorios_complementos"] y servicios: ["belleza_y_bienestar"]
- Si busca "plomero" → servicios: ["hogar_y_mantenimiento"] y empleos: ["construccion"]
- Si busca "trabajo de programador" → empleos: ["tecnologia"]
- Si busca "transporte", "chofer", "taxi" → servicios: ["transporte_y_logistica"] y empleos: ["transporte"]
- Siempre incluye palabras clave relevantes del texto original
- Sé flexible: "comida" puede ser productos (alimentos_bebidas) o servicios (gastronomia)

Ejemplos:

Usuario: "vino tinto"
Respuesta: {{"intencion":"buscar vino","tipo_busqueda":["productos"],"categorias_productos":["alimentos_bebidas"],"categorias_servicios":[],"categorias_empleos":[],"palabras_clave":["vino","tinto","bebida","alcohol","malbec"],"es_para_regalar":false,"genero_objetivo":"cualquiera"}}

Usuario: "necesito un plomero"
Respuesta: {{"intencion":"buscar servicios de plomeria","tipo_busqueda":["servicios","empleos"],"categorias_productos":[],"categorias_servicios":["hogar_y_mantenimiento"],"categorias_empleos":["construccion","hogar"],"palabras_clave":["plomero","plomeria","reparacion","agua","cañeria"],"es_para_regalar":false,"genero_objetivo":"cualquiera"}}

Usuario: "busco trabajo de diseñador web"
Respuesta: {{"intencion":"buscar empleo en diseño web","tipo_busqueda":["empleos"],"categorias_productos":[],"categorias_servicios":[],"categorias_empleos":["tecnologia","marketing"],"palabras_clave":["trabajo","empleo","diseñador","diseño","web"],"es_para_regalar":false,"genero_objetivo":"cualquiera"}}
"""

_FENCE_RE = re.compile(r"```(?:json)?\s*")


class SearchIntent(BaseModel):
    """Structured reading of a search query."""

    intencion: str = ""
    tipo_busqueda: list[str] = Field(default_factory=lambda: list(SEARCH_TYPES))
    categorias_productos: list[str] = Field(default_factory=list)
    categorias_servicios: list[str] = Field(default_factory=list)
    categorias_empleos: list[str] = Field(default_factory=list)
    palabras_clave: list[str] = Field(default_factory=list)
    es_para_regalar: bool = False
    genero_objetivo: str = "cualquiera"

    @field_validator("tipo_busqueda")
    @classmethod
    def known_types_only(cls, v: list[str]) -> list[str]:
        kept = [t for t in v if t in SEARCH_TYPES]
        if not kept:
            raise ValueError("tipo_busqueda names no known search type")
        return kept


@dataclass
class IntentResult:
    success: bool
    data: SearchIntent
    error: str | None = None


def fallback_keywords(query: str) -> list[str]:
    """Lowercase whitespace tokens longer than two characters."""
    return [word for word in query.lower().split() if len(word) > 2]


def fallback_intent(query: str) -> SearchIntent:
    """Match-everything reading used whenever the LLM cannot be used."""
    return SearchIntent(
        intencion=query,
        tipo_busqueda=list(SEARCH_TYPES),
        palabras_clave=fallback_keywords(query),
    )


def build_prompt(query: str) -> str:
    return PROMPT_TEMPLATE.format(
        query=query,
        productos=", ".join(PRODUCT_CATEGORIES),
        servicios=", ".join(SERVICE_CATEGORIES),
        empleos=", ".join(JOB_CATEGORIES),
    )


def parse_intent(content: str) -> SearchIntent:
    """Parse the model's reply, tolerating markdown code fences."""
    cleaned = _FENCE_RE.sub("", content).replace("```", "").strip()
    data: Any = json.loads(cleaned)
    if not isinstance(data, dict):
        raise ValueError("intent reply is not a JSON object")
    return SearchIntent.model_validate(data)


class SearchIntentAnalyzer:
    """Classifies search queries through the OpenAI chat completions API."""

    def __init__(
        self,
        api_key: str = "",
        model: str = "gpt-4o-mini",
        client: openai.AsyncOpenAI | None = None,
    ) -> None:
        self.model = model
        if client is None and api_key:
            client = openai.AsyncOpenAI(api_key=api_key)
        self._client = client

    async def analyze(self, query: str) -> IntentResult:
        if self._client is None:
            logger.warning("OPENAI_API_KEY not set, using fallback search intent")
            return IntentResult(success=False, data=fallback_intent(query), error="OpenAI not configured")

        try:
            response = await self._client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": build_prompt(query)},
                ],
                temperature=0.3,
                max_tokens=500,
            )
            content = (response.choices[0].message.content or "").strip()
            logger.debug("Intent reply for %r: %s", query, content)
            intent = parse_intent(content)
        except Exception as e:
            # Network, model and parse failures all degrade the same way
            logger.warning("Search intent analysis failed for %r: %s", query, e)
            return IntentResult(success=False, data=fallback_intent(query), error=str(e))

        logger.info("Search intent for %r: %s", query, intent.tipo_busqueda)
        return IntentResult(success=True, data=intent)


async def analyze_search_intent(query: str, analyzer: SearchIntentAnalyzer | None = None) -> IntentResult:
    """Classify ``query`` with ``analyzer`` (a keyless analyzer falls back)."""
    return await (analyzer or SearchIntentAnalyzer()).analyze(query)
