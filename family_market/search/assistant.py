"""Mily, the marketplace chat assistant.

A chat turn runs the same intent analysis and smart search as
``/api/smart-search`` (fewer results per section), then asks the LLM for a
short, friendly reply about what was found. The reply never fails: any
LLM problem yields a fixed apology.
"""

from __future__ import annotations

import logging
from typing import Any

import openai

logger = logging.getLogger(__name__)

CHAT_RESULTS_PER_SECTION = 5
HISTORY_TURNS = 4
FALLBACK_REPLY = "Ups, tuve un problemita técnico 😅 ¿Probás de nuevo?"

# section -> result type shown on the cards
RESULT_TYPES = {"productos": "producto", "servicios": "servicio", "empleos": "empleo"}

_PERSONA = """Eres Mily, asistente virtual amigable de Family Market (Argentina).

PERSONALIDAD:
- Alegre, cercana, usas emojis ocasionalmente (máximo 2)
- Hablas español argentino natural
- Profesional pero amigable
"""

_FOUND = """
HAY {total} RESULTADOS:
- Productos: {productos}
- Servicios: {servicios}
- Empleos: {empleos}

Responde:
1. Menciona brevemente qué encontraste
2. Sé entusiasta
3. Sugiere revisar las tarjetas de abajo
4. MUY BREVE (2-3 líneas)

Ejemplos:
"¡Genial! Encontré {total} opciones para vos 😊 Mirá las tarjetas!"
"¡Perfecto! Tengo {productos} productos que te pueden gustar 🎁"
"""

_NOT_FOUND = """
NO HAY RESULTADOS para: "{message}"

Responde:
1. Sé empática pero positiva
2. Sugiere reformular
3. Da ejemplos
4. Breve (2-3 líneas)

Ejemplo:
"No encontré nada con eso 😅 ¿Probás de otra forma? Ej: 'regalos para mamá' o 'plomero'"
"""

_CLOSING = "\nIMPORTANTE: Máximo 3 líneas, lenguaje argentino casual."


def build_system_prompt(message: str, results: dict[str, list[dict[str, Any]]]) -> str:
    counts = {section: len(results.get(section, [])) for section in RESULT_TYPES}
    total = sum(counts.values())
    if total:
        body = _FOUND.format(total=total, **counts)
    else:
        body = _NOT_FOUND.format(message=message)
    return _PERSONA + body + _CLOSING


def history_messages(history: Any) -> list[dict[str, str]]:
    """Last few chat turns as OpenAI messages; malformed entries are skipped."""
    if not isinstance(history, list):
        return []
    messages = []
    for entry in history[-HISTORY_TURNS:]:
        if not isinstance(entry, dict) or not isinstance(entry.get("text"), str):
            continue
        role = "user" if entry.get("type") == "user" else "assistant"
        messages.append({"role": role, "content": entry["text"]})
    return messages


def flatten_results(results: dict[str, list[dict[str, Any]]]) -> list[dict[str, Any]]:
    """Sections merged into one card list, each document tagged with its type."""
    return [
        {**doc, "type": kind}
        for section, kind in RESULT_TYPES.items()
        for doc in results.get(section, [])
    ]


class MilyAssistant:
    """Writes Mily's chat replies through the OpenAI chat completions API."""

    def __init__(
        self,
        api_key: str = "",
        model: str = "gpt-3.5-turbo",
        client: openai.AsyncOpenAI | None = None,
    ) -> None:
        self.model = model
        if client is None and api_key:
            client = openai.AsyncOpenAI(api_key=api_key)
        self._client = client

    async def reply(
        self,
        message: str,
        history: Any,
        results: dict[str, list[dict[str, Any]]],
    ) -> str:
        if self._client is None:
            logger.warning("OPENAI_API_KEY not set, Mily answers with the fallback reply")
            return FALLBACK_REPLY

        messages = [
            {"role": "system", "content": build_system_prompt(message, results)},
            *history_messages(history),
            {"role": "user", "content": message},
        ]
        try:
            response = await self._client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=0.8,
                max_tokens=100,
            )
            content = (response.choices[0].message.content or "").strip()
        except Exception as e:
            logger.warning("Mily reply failed: %s", e)
            return FALLBACK_REPLY
        return content or FALLBACK_REPLY
