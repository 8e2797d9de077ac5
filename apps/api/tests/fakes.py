"""Test doubles shared across test modules."""

import asyncio
import json
from typing import Any, List, Optional

from services.llm_client import Completion


def ai_batch_payload(topic: str, count: int = 3) -> str:
    return json.dumps(
        {
            "scripts": [
                {
                    "hook": f"Hook {idx} about {topic}",
                    "context": f"Context {idx} about {topic}",
                    "punchline": f"Punchline {idx} about {topic}",
                    "caption": f"{topic} caption {idx} #TeluguReels",
                    "usedDataset": True,
                }
                for idx in range(count)
            ]
        }
    )


class FakeCompletionClient:
    """Scripted completion collaborator; each call pops the next outcome."""

    model = "fake-model"

    def __init__(self, outcomes: Optional[List[Any]] = None, *, delay: float = 0.0):
        self.outcomes = list(outcomes or [])
        self.prompts: List[str] = []
        self.delay = delay
        self.available = True

    @property
    def calls(self) -> int:
        return len(self.prompts)

    async def complete(self, prompt: str, json_output: bool = True) -> Completion:
        self.prompts.append(prompt)
        if self.delay:
            await asyncio.sleep(self.delay)
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, BaseException):
            raise outcome
        return Completion(text=outcome, input_tokens=120, output_tokens=300)
