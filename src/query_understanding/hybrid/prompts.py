"""Prompts and few-shot examples for generated query understanding."""

import json
from typing import List, Optional

from query_understanding.llm.types import ChatMessage
from query_understanding.models import Intent


BASE_INSTRUCTIONS = """You turn alumni directory search queries into JSON.

Reply with ONE JSON object and nothing else:
{"intent": "<intent>", "confidence": <0-1>, "entities": {
  "graduation_year": [<years>], "location": "<city>", "branch": "<department>",
  "skills": ["..."], "services": ["..."], "name": "<person>", "organization_name": "<company>"}}

Intents:
- find_business: a company, vendor or service provider
- find_peers: people from a batch, year or branch
- find_specific_person: one named person
- find_alumni_business: alumni who run a business or offer a service

Rules:
- Omit entities that are not in the query. Never invent values.
- Two-digit years: 00-30 are 2000-2030, 31-99 are 1931-1999.
- Branch as a full department name ("ECE" -> "Electronics and Communication Engineering").
- skills are things people know; services are things a business offers."""

INTENT_FOCUS = {
    Intent.FIND_BUSINESS: (
        "The query most likely looks for a business. Focus on services, skills and location."
    ),
    Intent.FIND_PEERS: (
        "The query most likely looks for batchmates. Focus on graduation years, branch and location."
    ),
    Intent.FIND_SPECIFIC_PERSON: (
        "The query most likely names one person. Focus on the person's name, their organization and batch."
    ),
    Intent.FIND_ALUMNI_BUSINESS: (
        "The query most likely looks for alumni running a business. "
        "Capture both the batch details and the services offered."
    ),
}

FEW_SHOT_EXAMPLES = [
    {
        "query": "Can you help me find my classmates from '98 mech who moved to Bengaluru",
        "result": {
            "intent": "find_peers",
            "confidence": 0.9,
            "entities": {
                "graduation_year": [1998],
                "branch": "Mechanical Engineering",
                "location": "Bangalore",
            },
        },
    },
    {
        "query": "I need someone for digital marketing, preferably from our alumni in Coimbatore",
        "result": {
            "intent": "find_alumni_business",
            "confidence": 0.85,
            "entities": {"services": ["digital marketing"], "location": "Coimbatore"},
        },
    },
    {
        "query": "Where is Karthik Raman from 2010 ECE working now",
        "result": {
            "intent": "find_specific_person",
            "confidence": 0.9,
            "entities": {
                "name": "Karthik Raman",
                "graduation_year": [2010],
                "branch": "Electronics and Communication Engineering",
            },
        },
    },
    {
        "query": "companies doing web development or app development near Madras",
        "result": {
            "intent": "find_business",
            "confidence": 0.85,
            "entities": {"skills": ["web development", "app development"], "location": "Chennai"},
        },
    },
]


def get_few_shot_prompt(n_examples: int = 4) -> str:
    parts = ["Examples:"]
    for example in FEW_SHOT_EXAMPLES[:n_examples]:
        parts.append(f"Query: {example['query']}")
        parts.append(f"JSON: {json.dumps(example['result'])}")
    return "\n".join(parts)


def build_system_prompt(intent: Intent) -> str:
    return "\n\n".join([BASE_INSTRUCTIONS, INTENT_FOCUS[intent], get_few_shot_prompt()])


def build_user_prompt(query: str, context: Optional[str] = None) -> str:
    lines = [f"Query: {query.strip()}"]
    if context and context.strip():
        lines.append(f"Context: {context.strip()}")
    lines.append("JSON:")
    return "\n".join(lines)


def build_messages(query: str, intent: Intent, context: Optional[str] = None) -> List[ChatMessage]:
    return [
        ChatMessage(role="system", content=build_system_prompt(intent)),
        ChatMessage(role="user", content=build_user_prompt(query, context)),
    ]
