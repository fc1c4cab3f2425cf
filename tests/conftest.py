"""
Shared fixtures: seeded random sources, a throw-away store directory, small
hand-built content tables and a Flask test client with the live model off.
"""

import copy
import random
import sys
from pathlib import Path
from typing import Optional

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import store_engine  # noqa: E402
from catalog_engine import PROFILE_RULE_IDS, build_catalog, get_catalog  # noqa: E402
from llm_client import DisabledClient, LanguageModelClient  # noqa: E402


_MINIMAL_TABLES = {
    "templates": {
        "categories": [
            {
                "id": "weak_subject",
                "groups": [
                    {
                        "patterns": ["dốt {subject}", "kém {subject}"],
                        "slots": {"subject": {"toán": ["toán"], "văn": ["ngữ văn", "văn"]}},
                        "responses": {
                            "toán": ["Toán: {subject}"],
                            "default": ["Môn {subject}"],
                        },
                    }
                ],
            },
            {
                "id": "money",
                "groups": [
                    {"patterns": ["không có tiền", "học phí cao"], "responses": ["Tiền"]}
                ],
            },
        ]
    },
    "contextual": {
        "categories": [
            {
                "id": "specific_concerns",
                "priority": 1.2,
                "groups": [{"keywords": ["lo lắng", "sợ"], "responses": ["Lo"]}],
            },
            {
                "id": "greetings",
                "priority": 0.9,
                "groups": [{"keywords": ["xin chào", "chào"], "responses": ["Chào"]}],
            },
        ]
    },
    "profile": {
        "tags": {
            "concerns": {
                "academic_weakness": ["dốt"],
                "financial": ["nghèo"],
                "age": ["tuổi"],
            },
            "interests": {
                "technology": ["lập trình"],
                "design": ["thiết kế"],
                "business": ["kinh doanh"],
            },
            "personality": {
                "creative": ["sáng tạo"],
                "analytical": ["logic"],
                "social": ["giao tiếp"],
            },
            "demographics": {"female": ["con gái"]},
        },
        "rules": {rule_id: [f"R:{rule_id}"] for rule_id in PROFILE_RULE_IDS},
        "encouragement": ["E"],
    },
    "fallback": {"responses": ["G"]},
    "fields": {
        "fields": [
            {
                "code": "A", "id": 1, "name": "Alpha", "base": 50, "ceiling": 80,
                "rules": [
                    {"when": "interest", "value": "X", "delta": 40, "reason": "Thích X"},
                ],
            },
            {"code": "B", "id": 2, "name": "Beta", "base": 50, "ceiling": 90, "rules": []},
        ],
        "generic_reasons": ["g1", "g2"],
        "analysis": {
            "summary": "Tóm tắt cho {name}",
            "strengths": ["s1"],
            "recommendations": ["r1"],
        },
    },
}


class FakeClient(LanguageModelClient):
    """Live-model stand-in that replays a canned answer and records calls."""

    def __init__(self, answer: Optional[str], name: str = "fake-model"):
        self.answer = answer
        self.name   = name
        self.calls  = []

    @property
    def available(self) -> bool:
        return True

    def try_complete(self, system_prompt, user_prompt, history=None, max_tokens=500):
        self.calls.append({"system": system_prompt, "user": user_prompt,
                           "history": list(history or []), "max_tokens": max_tokens})
        return self.answer


@pytest.fixture
def rng():
    return random.Random(42)


@pytest.fixture
def catalog():
    return get_catalog()


@pytest.fixture
def tables():
    """Fresh deep copy of the minimal content tables, safe to mutate."""
    return copy.deepcopy(_MINIMAL_TABLES)


@pytest.fixture
def small_catalog(tables):
    return build_catalog(**tables)


@pytest.fixture
def fake_client():
    return FakeClient


@pytest.fixture
def store_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(store_engine, "_STORE_DIR", str(tmp_path))
    return tmp_path


@pytest.fixture
def app_module(store_dir, monkeypatch):
    import app as app_module

    monkeypatch.setattr(app_module, "CLIENT", DisabledClient())
    monkeypatch.setitem(app_module.app.config, "ADVISOR_RNG", random.Random(7))
    app_module.app.config["TESTING"] = True
    return app_module


@pytest.fixture
def http(app_module):
    return app_module.app.test_client()
