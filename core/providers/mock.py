"""Deterministic provider for tests and local development."""

from __future__ import annotations

import asyncio
import copy
import json
from typing import Any, Dict, Optional

import structlog

from core.adapter import LLMAdapter
from core.orchestrator import GenerationOrchestrator
from core.schema import mock_from_schema, validate_against_schema
from core.types import ProviderOutput, ResolvedConfig, TokenUsage
from exceptions import SchemaValidationError

logger = structlog.get_logger(__name__)

DEFAULT_FIXTURES: Dict[str, Any] = {
    "resume-parse": {
        "personalInfo": {
            "fullName": "John Doe",
            "email": "john.doe@example.com",
            "phone": "+1-234-567-8900",
            "location": "San Francisco, CA",
            "linkedin": "linkedin.com/in/johndoe",
            "website": "johndoe.com",
            "summary": "Experienced software engineer with 5+ years in full-stack development.",
        },
        "experience": [
            {
                "id": "exp-1",
                "company": "Tech Corp",
                "position": "Senior Software Engineer",
                "startDate": "2020-01",
                "endDate": "",
                "current": True,
                "description": "Leading development of cloud-native applications.",
            }
        ],
        "education": [
            {
                "id": "edu-1",
                "institution": "Stanford University",
                "degree": "Bachelor of Science",
                "field": "Computer Science",
                "startDate": "2015-09",
                "endDate": "2019-06",
                "current": False,
            }
        ],
        "skills": ["JavaScript", "React", "Node.js", "AWS", "Docker", "PostgreSQL"],
        "confidence": {"overall": "high"},
    },
    "cover-letter": (
        "Dear Hiring Manager,\n\n"
        "I am writing to express my interest in the Software Engineer position at your company. "
        "With my extensive experience in full-stack development and passion for creating innovative "
        "solutions, I am confident I would be a valuable addition to your team.\n\n"
        "I look forward to discussing how my skills can contribute to your organization's success.\n\n"
        "Sincerely,\nJohn Doe"
    ),
    "job-match": {"matchScore": 85},
}


def extract_mock_key(prompt: str) -> Optional[str]:
    """Pick a fixture by coarse keywords in the prompt."""
    text = prompt.lower()
    if "resume" in text and "parse" in text:
        return "resume-parse"
    if "cover letter" in text:
        return "cover-letter"
    if "job match" in text:
        return "job-match"
    return None


class MockAdapter(LLMAdapter):
    """Returns canned fixtures, or values synthesised from the schema."""

    provider = "mock"

    def __init__(
        self,
        orchestrator: GenerationOrchestrator,
        model: str = "mock-model",
        *,
        latency_ms: int = 100,
    ) -> None:
        super().__init__(model, orchestrator)
        self.latency_ms = latency_ms
        self.call_count = 0
        self._fixtures: Dict[str, Any] = copy.deepcopy(DEFAULT_FIXTURES)

    def set_mock_response(self, key: str, response: Any) -> None:
        self._fixtures[key] = response

    def _fixture_for(self, prompt: str) -> Any:
        for key in self._fixtures:
            # custom keys match when they appear verbatim in the prompt
            if key not in DEFAULT_FIXTURES and key.lower() in prompt.lower():
                return copy.deepcopy(self._fixtures[key])
        key = extract_mock_key(prompt)
        if key is None:
            return None
        return copy.deepcopy(self._fixtures.get(key))

    async def _simulate(self) -> None:
        self.call_count += 1
        await asyncio.sleep(self.latency_ms / 1000)

    async def _call_text(self, prompt: str, config: ResolvedConfig) -> ProviderOutput:
        await self._simulate()
        fixture = self._fixture_for(prompt)
        if fixture is None:
            text = f"Mock response for: {prompt[:50]}..."
        elif isinstance(fixture, str):
            text = fixture
        else:
            text = json.dumps(fixture)
        return ProviderOutput(data=text, tokens=TokenUsage.estimate(prompt, text))

    async def _call_structured(
        self, prompt: str, schema: Optional[Dict[str, Any]], config: ResolvedConfig
    ) -> ProviderOutput:
        await self._simulate()
        data = self._fixture_for(prompt)
        if data is not None and schema:
            try:
                validate_against_schema(data, schema)
            except SchemaValidationError:
                logger.debug("mock_fixture_schema_mismatch", prompt=prompt[:50])
                data = None
        if data is None:
            data = mock_from_schema(schema)
        return ProviderOutput(data=data, tokens=TokenUsage.estimate(prompt, json.dumps(data)))
