"""
SalesOps - AI setter

Répond à un lead avec le prompt actif de la table ai_prompts
(OpenAI chat completions).
"""

import logging
from typing import Optional

import config
from config import get_db, http_client, rows
from models import AISetterMessage
from services.upstream import UpstreamError, response_body

logger = logging.getLogger("ai_setter")

OPENAI_URL = "https://api.openai.com/v1/chat/completions"


async def active_prompt() -> Optional[str]:
    found = rows(
        await get_db().table("ai_prompts").select("id, prompt")
        .eq("active", True)
        .order("created_at", desc=True)
        .limit(1)
        .execute()
    )
    return found[0].get("prompt") if found else None


def build_messages(prompt: str, data: AISetterMessage) -> list:
    system = prompt
    if data.state:
        facts = "\n".join(f"- {k}: {v}" for k, v in data.state.items())
        system = f"{prompt}\n\nLead state:\n{facts}"
    messages = [{"role": "system", "content": system}]
    for turn in data.history:
        if turn.get("role") in ("user", "assistant") and turn.get("content"):
            messages.append({"role": turn["role"], "content": turn["content"]})
    messages.append({"role": "user", "content": data.message})
    return messages


async def reply(data: AISetterMessage) -> dict:
    """
    Returns: {"reply", "state"}
    Raises: UpstreamError(503) si OPENAI_API_KEY ou prompt absents
    """
    if not config.OPENAI_API_KEY:
        raise UpstreamError("AI setter handler not available: missing OPENAI_API_KEY", 503)
    prompt = await active_prompt()
    if not prompt:
        raise UpstreamError("AI setter handler not available: no active prompt", 503)

    async with http_client() as client:
        resp = await client.post(
            OPENAI_URL,
            json={"model": config.OPENAI_MODEL, "messages": build_messages(prompt, data)},
            headers={"Authorization": f"Bearer {config.OPENAI_API_KEY}"},
        )
    body = response_body(resp)
    if resp.status_code >= 400:
        raise UpstreamError(f"OpenAI error ({resp.status_code})", resp.status_code, body)

    choices = (body.get("choices") or []) if isinstance(body, dict) else []
    text = ((choices[0].get("message") or {}).get("content") or "").strip() if choices else ""
    return {"reply": text, "state": data.state}
