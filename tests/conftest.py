"""
Shared fixtures: a scripted completion provider stands in for hosted models.
"""

import asyncio
import json
from typing import Dict, List

import pytest

from clinical_mcp.events import EventBus
from clinical_mcp.manager import SessionManager
from clinical_mcp.providers import Completion, CompletionProvider
from clinical_mcp.store import SessionStore


class ScriptedProvider(CompletionProvider):
    """Returns queued replies in order; an Exception in the queue is raised."""

    name = "openai"

    def __init__(self, replies=None, default=None, delay: float = 0.0):
        self.replies = list(replies or [])
        self.default = default
        self.delay = delay
        self.calls: List[Dict] = []

    async def complete(self, system_prompt, messages):
        self.calls.append({"system": system_prompt, "messages": messages})
        if self.delay:
            await asyncio.sleep(self.delay)
        reply = self.replies.pop(0) if self.replies else self.default
        if isinstance(reply, Exception):
            raise reply
        if reply is None:
            raise RuntimeError("no scripted reply")
        return Completion(text=reply, usage={"total_tokens": 42}, model="scripted")


def json_reply(confidence=0.8, **fields) -> str:
    return "Here is my assessment:\n" + json.dumps({"confidence": confidence, **fields}) + "\nEnd."


PRESCRIPTION_REPLY = json_reply(
    0.75,
    medications=[
        {
            "name": "Amoxicillin",
            "dosage": "500mg",
            "route": "Oral",
            "frequency": "Every 8 hours",
            "duration": "7 days",
            "instructions": "Take with food",
            "warnings": ["Stop if rash develops"],
            "interactions": "May reduce oral contraceptive efficacy",
            "cost_estimate": "$10",
        }
    ],
    drug_interactions=["None significant"],
    clinical_reasoning="First-line for community-acquired pneumonia",
)


@pytest.fixture
def patient():
    return {
        "id": "p1",
        "name": "Jane Doe",
        "age": 42,
        "gender": "female",
        "medical_history": ["asthma"],
        "current_medications": ["salbutamol"],
        "allergies": ["penicillin"],
        "vitals": {"blood_pressure": "120/80", "heart_rate": 88, "temperature": 101.2, "oxygen_saturation": 95},
    }


@pytest.fixture
def provider():
    return ScriptedProvider(default=json_reply(0.9, analysis="ok", clinical_reasoning="seed"))


@pytest.fixture
def events():
    bus = EventBus()
    bus.received = []
    for name in (
        "session_created", "session_initialized", "symptoms_added", "diagnosis_set",
        "prescription_generated", "drug_interactions_checked", "session_closed", "session_error",
    ):
        bus.subscribe(name, lambda event, payload: bus.received.append((event, payload)))
    return bus


@pytest.fixture
def manager(provider, events):
    return SessionManager(
        providers={"openai": provider, "anthropic": provider, "gemini": provider},
        store=SessionStore(max_sessions=10),
        events=events,
        completion_timeout=0.5,
    )
