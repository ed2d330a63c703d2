"""Bedrock-backed language model client.

Each method takes a prepared prompt and returns a typed result. Responses that
cannot be parsed into that type raise ``MalformedResponseError``; throttling
raises ``TransientOracleError``; every other failure raises
``TerminalOracleError``.
"""

import asyncio
import json
import logging
import re
from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from pydantic import BaseModel, ValidationError

from campus_safety import config
from campus_safety.errors import (
    MalformedResponseError,
    TerminalOracleError,
    TransientOracleError,
)
from campus_safety.models import ChatReply, IncidentAnalysis, SafetyStatus
from campus_safety.retry import is_rate_limit_error

logger = logging.getLogger(__name__)

SUMMARY_FORMAT = (
    "Respond in JSON only, no markdown, with exactly these keys: "
    '"score" (number 0-100), "summary" (string), '
    '"recommendations" (array of strings), "reasoningSteps" (array of strings).'
)

ANALYSIS_FORMAT = (
    "Respond in JSON only, no markdown, with exactly these keys: "
    '"severity" (one of LOW, MEDIUM, HIGH, CRITICAL), "analysis" (string), '
    '"type" (string), "locationName" (string).'
)

CHAT_FORMAT = (
    "Respond in JSON only, no markdown, with keys: "
    '"text" (your answer as a string) and "links" '
    '(array of {"title": string, "uri": string} for any places or sources you cite, may be empty).'
)


def extract_json(text: str) -> dict:
    """Pull a JSON object out of the model response (handles markdown code blocks)."""
    text = text.strip()
    m = re.search(r"```(?:json)?\s*([\s\S]*?)\s*```", text)
    if m:
        text = m.group(1).strip()
    data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError("expected a JSON object")
    return data


def parse_model(text: str, model: type) -> BaseModel:
    try:
        return model.model_validate(extract_json(text))
    except (ValueError, ValidationError) as e:
        raise MalformedResponseError(f"Could not parse {model.__name__}: {e}", raw=text) from e


class BedrockOracle:
    def __init__(
        self,
        model_id: str = config.BEDROCK_MODEL,
        region_name: str = config.AWS_REGION,
        max_tokens: int = config.ORACLE_MAX_TOKENS,
        client=None,
    ):
        self.model_id = model_id
        self.region_name = region_name
        self.max_tokens = max_tokens
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = boto3.client("bedrock-runtime", region_name=self.region_name)
        return self._client

    def _invoke_sync(
        self,
        prompt: str,
        system: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> str:
        body = {
            "anthropic_version": "bedrock-2023-05-31",
            "max_tokens": max_tokens or self.max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system:
            body["system"] = system
        if temperature is not None:
            body["temperature"] = temperature

        try:
            response = self.client.invoke_model(modelId=self.model_id, body=json.dumps(body))
        except ClientError as e:
            if is_rate_limit_error(e):
                raise TransientOracleError(str(e)) from e
            raise TerminalOracleError(str(e)) from e
        except BotoCoreError as e:
            raise TerminalOracleError(str(e)) from e

        try:
            response_body = json.loads(response["body"].read())
            return "".join(
                block.get("text", "")
                for block in response_body.get("content", [])
                if block.get("type", "text") == "text"
            ).strip()
        except (KeyError, TypeError, ValueError) as e:
            raise TerminalOracleError(f"Unreadable Bedrock response: {e}") from e

    async def invoke(self, prompt: str, **kwargs) -> str:
        # boto3 is blocking; keep the event loop free
        text = await asyncio.to_thread(self._invoke_sync, prompt, **kwargs)
        logger.debug(f"Model raw response: {text}")
        return text

    async def summarize(self, prompt: str) -> SafetyStatus:
        text = await self.invoke(prompt, system=SUMMARY_FORMAT)
        return parse_model(text, SafetyStatus)

    async def analyze(self, prompt: str) -> IncidentAnalysis:
        text = await self.invoke(prompt, system=ANALYSIS_FORMAT)
        return parse_model(text, IncidentAnalysis)

    async def draft(self, prompt: str, system_instruction: Optional[str] = None) -> str:
        return await self.invoke(prompt, system=system_instruction, max_tokens=80, temperature=0.1)

    async def chat(self, message: str, context: str) -> ChatReply:
        text = await self.invoke(message, system=f"{context}\n\n{CHAT_FORMAT}")
        return parse_model(text, ChatReply)
